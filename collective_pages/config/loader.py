"""Load settings YAML into typed dataclasses."""

from __future__ import annotations

import typing as typ
from pathlib import Path

from ruamel.yaml import YAML

from .models import DEFAULT_API_URL, ConfigError, Settings, ViewportSettings

DEFAULT_SETTINGS_PATH = Path("config/collective-pages.yaml")


def load_settings(path: Path | None = None) -> Settings:
    """Load the YAML settings consumed by the CLI and the controllers.

    Parameters
    ----------
    path : Path, optional
        Explicit settings file. When ``None`` the default
        ``config/collective-pages.yaml`` is read if it exists, otherwise the
        built-in defaults are returned.

    Returns
    -------
    Settings
        Parsed settings with defaults applied for every missing key.

    Raises
    ------
    FileNotFoundError
        If an explicit ``path`` does not exist.
    ConfigError
        If the document is not a mapping or a value has the wrong type.
    YAMLError
        If the YAML content cannot be parsed by the underlying loader.

    Examples
    --------
    >>> from pathlib import Path
    >>> from collective_pages.config import load_settings
    >>> settings = load_settings(Path("config/collective-pages.yaml"))  # doctest: +SKIP
    >>> settings.viewport.distance_threshold  # doctest: +SKIP
    400
    """
    if path is None:
        if not DEFAULT_SETTINGS_PATH.exists():
            return Settings()
        path = DEFAULT_SETTINGS_PATH
    elif not path.exists():
        msg = f"Settings file '{path}' not found."
        raise FileNotFoundError(msg)

    loader = YAML(typ="safe")
    loader.version = (1, 2)
    with path.open("r", encoding="utf-8") as handle:
        loaded = loader.load(handle) or {}
    if not isinstance(loaded, dict):
        msg = "Top-level YAML structure must be a mapping."
        raise ConfigError(msg)
    raw: dict[str, typ.Any] = dict(loaded)

    api_raw = raw.get("api", {}) or {}
    webhooks_raw = raw.get("webhooks", {}) or {}
    viewport_raw = raw.get("viewport", {}) or {}
    for name, block in (
        ("api", api_raw),
        ("webhooks", webhooks_raw),
        ("viewport", viewport_raw),
    ):
        if not isinstance(block, dict):
            msg = f"'{name}' must be a mapping."
            raise ConfigError(msg)

    defaults = Settings()
    commit_timeout = webhooks_raw.get("commit_timeout", defaults.commit_timeout)
    return Settings(
        api_url=str(api_raw.get("url") or DEFAULT_API_URL),
        request_timeout=_number(
            api_raw, "timeout", defaults.request_timeout, minimum=0.0
        ),
        commit_timeout=(
            None
            if commit_timeout is None
            else _number(webhooks_raw, "commit_timeout", 0.0, minimum=0.0)
        ),
        saved_status_seconds=_number(
            webhooks_raw, "saved_status_seconds", defaults.saved_status_seconds
        ),
        viewport=_build_viewport_settings(viewport_raw),
    )


def _build_viewport_settings(payload: typ.Mapping[str, typ.Any]) -> ViewportSettings:
    """Build a ViewportSettings instance from the provided mapping payload."""
    base = ViewportSettings()
    return ViewportSettings(
        distance_threshold=_number(
            payload, "distance_threshold", base.distance_threshold
        ),
        throttle_interval=_number(
            payload, "throttle_interval", base.throttle_interval, minimum=0.0
        ),
        small_viewport_height=_number(
            payload, "small_viewport_height", base.small_viewport_height
        ),
        small_viewport_offset=_number(
            payload, "small_viewport_offset", base.small_viewport_offset
        ),
        large_viewport_offset=_number(
            payload, "large_viewport_offset", base.large_viewport_offset
        ),
    )


def _number(
    payload: typ.Mapping[str, typ.Any],
    key: str,
    default: float,
    *,
    minimum: float | None = None,
) -> float:
    """Return ``payload[key]`` as a number, falling back to ``default``."""
    value = payload.get(key, default)
    match value:
        case bool():
            msg = f"'{key}' must be a number, got {value!r}."
            raise ConfigError(msg)
        case int() | float():
            number = value
        case _:
            msg = f"'{key}' must be a number, got {value!r}."
            raise ConfigError(msg)
    if minimum is not None and number < minimum:
        msg = f"'{key}' must be at least {minimum}, got {number}."
        raise ConfigError(msg)
    return number


__all__ = ["DEFAULT_SETTINGS_PATH", "load_settings"]
