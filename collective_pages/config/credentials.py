"""Resolve and persist the API token used by the persistence client.

The token is looked up on the command line first, then in the environment,
then in ``~/.config/collective-pages/config.toml``. Saving rewrites only the
``[auth]`` table so comments and other tables survive, and restricts the file
to its owner.
"""

from __future__ import annotations

import os
from pathlib import Path

import tomlkit

DEFAULT_CREDENTIALS_PATH = Path(
    os.getenv(
        "COLLECTIVE_PAGES_CONFIG_FILE",
        Path.home() / ".config" / "collective-pages" / "config.toml",
    )
)
TOKEN_ENV_VARS = ("COLLECTIVE_PAGES_TOKEN", "OC_API_TOKEN")

_CREDENTIALS_FILE_MODE = 0o600


class CredentialError(RuntimeError):
    """Raised when a required API token is missing."""


def load_stored_token(path: Path = DEFAULT_CREDENTIALS_PATH) -> str | None:
    """Return the token stored under ``[auth]``, or ``None`` when absent."""
    if not path.exists():
        return None
    try:
        doc = tomlkit.parse(path.read_text(encoding="utf-8"))
    except tomlkit.exceptions.ParseError as exc:
        msg = f"Unable to parse credentials TOML at {path}"
        raise ValueError(msg) from exc
    auth = doc.get("auth") or {}
    token = auth.get("api_token")
    return str(token) if token else None


def save_token(token: str | None, *, path: Path = DEFAULT_CREDENTIALS_PATH) -> None:
    """Persist ``token`` into ``config.toml``; ``None`` removes the entry."""
    path.parent.mkdir(parents=True, exist_ok=True)

    try:
        doc = tomlkit.parse(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        doc = tomlkit.document()
    except tomlkit.exceptions.ParseError as exc:
        msg = f"Unable to parse credentials TOML at {path}"
        raise ValueError(msg) from exc

    auth_table = doc.get("auth")
    if not isinstance(auth_table, tomlkit.items.Table):
        auth_table = tomlkit.table()
    if token is None:
        auth_table.pop("api_token", None)
    else:
        auth_table["api_token"] = token
    doc["auth"] = auth_table

    path.write_text(tomlkit.dumps(doc), encoding="utf-8")
    os.chmod(path, _CREDENTIALS_FILE_MODE)


def resolve_api_token(
    token: str | None = None,
    *,
    path: Path = DEFAULT_CREDENTIALS_PATH,
    required: bool = False,
    save: bool = False,
) -> str | None:
    """Merge CLI, environment, and stored credentials into one token.

    Parameters
    ----------
    token : str | None, optional
        Token passed explicitly, e.g. from a CLI option.
    path : Path, optional
        Location of the credentials TOML file.
    required : bool, optional
        Raise :class:`CredentialError` when no token can be found.
    save : bool, optional
        Store a token that was provided explicitly or via the environment.

    Returns
    -------
    str | None
        The resolved token, or ``None`` when none is configured and
        ``required`` is false.
    """
    explicit = token or next(
        (os.environ[name] for name in TOKEN_ENV_VARS if os.getenv(name)), None
    )
    resolved = explicit or load_stored_token(path)
    if required and not resolved:
        names = ", ".join(TOKEN_ENV_VARS)
        msg = (
            "An API token is required. Provide it via --token, one of "
            f"{names}, or {path}."
        )
        raise CredentialError(msg)
    if save and explicit:
        save_token(explicit, path=path)
    return resolved


__all__ = [
    "DEFAULT_CREDENTIALS_PATH",
    "TOKEN_ENV_VARS",
    "CredentialError",
    "load_stored_token",
    "resolve_api_token",
    "save_token",
]
