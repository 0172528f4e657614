"""Exceptions raised at the persistence boundary.

The transport can fail in several shapes: the server rejects individual
fields, the GraphQL layer reports errors, or the request itself fails.
:meth:`CommitError.from_failure` collapses these into one tagged exception
so the webhook controller only ever deals with a kind and a message.
"""

from __future__ import annotations

import collections.abc as cabc
import enum
import typing as typ


class CommitErrorKind(enum.StrEnum):
    FIELD = "field"
    TRANSPORT = "transport"
    GENERIC = "generic"
    TIMEOUT = "timeout"


class PersistenceError(RuntimeError):
    """Raised when reading from the persistence service fails."""


class CommitError(RuntimeError):
    """Raised when a write to the persistence service fails."""

    def __init__(self, kind: CommitErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message

    @classmethod
    def from_failure(
        cls,
        *,
        field_errors: cabc.Sequence[cabc.Mapping[str, typ.Any]] | None = None,
        transport_errors: cabc.Sequence[cabc.Mapping[str, typ.Any]] | None = None,
        message: str | None = None,
    ) -> CommitError:
        """Pick the most specific message available.

        Field errors win over transport errors, which win over the generic
        message; within a list the first entry carrying a message is used.
        """
        for kind, errors in (
            (CommitErrorKind.FIELD, field_errors),
            (CommitErrorKind.TRANSPORT, transport_errors),
        ):
            text = _first_message(errors)
            if text:
                return cls(kind, text)
        return cls(CommitErrorKind.GENERIC, message or "Unable to save changes.")

    def __repr__(self) -> str:
        return f"CommitError(kind={self.kind.value!r}, message={self.message!r})"


def _first_message(
    errors: cabc.Sequence[cabc.Mapping[str, typ.Any]] | None,
) -> str | None:
    for error in errors or ():
        text = error.get("message") if isinstance(error, cabc.Mapping) else None
        if text:
            return str(text)
    return None


__all__ = ["CommitError", "CommitErrorKind", "PersistenceError"]
