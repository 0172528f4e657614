r"""Edit a collective's webhooks and commit them to the persistence service.

:class:`WebhookCollectionController` owns the ordered list of
:class:`WebhookRecord` objects shown in the webhook editor. Edits happen in
memory: every change marks the collection dirty and recomputes whether all
URLs are valid. :meth:`WebhookCollectionController.commit` sends the whole
list in one write and replaces it with the server's echo on success.

URLs are stored trimmed and without their ``http://``/``https://`` prefix;
:meth:`WebhookCollectionController.display_url` puts ``https://`` back for
display.

Example
-------
>>> from collective_pages.webhooks import normalize_webhook_url, validate_webhook_url
>>> normalize_webhook_url("  https://example.com/hook ")
'example.com/hook'
>>> validate_webhook_url("example.com/hook")
True
>>> validate_webhook_url("not a url")
False
"""

from __future__ import annotations

import asyncio
import dataclasses as dc
import enum
import inspect
import ipaddress
import logging
import re
import typing as typ
from urllib.parse import urlsplit

from ._constants import (
    COMMIT_TIMEOUT_SECONDS,
    DEFAULT_EVENT_FILTER,
    DISPLAY_URL_PREFIX,
    SAVED_STATUS_SECONDS,
)
from .capabilities import derive_event_catalog
from .errors import CommitError, CommitErrorKind

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from .capabilities import CollectiveEntity
    from .persistence import PersistenceService
    from .viewport import Scheduler, TimerHandle

logger = logging.getLogger(__name__)

SCHEME_PATTERN = re.compile(r"^https?://", re.IGNORECASE)
_HOST_LABEL_PATTERN = re.compile(r"^(?!-)[a-z0-9\u00a1-\uffff-]{1,63}(?<!-)$", re.IGNORECASE)
_TLD_PATTERN = re.compile(r"^(?:[a-z\u00a1-\uffff]{2,}|xn--[a-z0-9-]{2,59})$", re.IGNORECASE)

URL_FIELDS = frozenset({"webhookUrl", "webhook_url"})
TYPE_FIELDS = frozenset({"type", "event_filter"})


class Validity(enum.StrEnum):
    VALID = "valid"
    INVALID = "invalid"


class SubmissionStatus(enum.StrEnum):
    IDLE = "idle"
    IN_FLIGHT = "in_flight"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


def normalize_webhook_url(value: str | None) -> str:
    """Return ``value`` trimmed and without a leading ``http(s)://``."""
    if not value:
        return ""
    return SCHEME_PATTERN.sub("", value.strip(), count=1)


def validate_webhook_url(value: str | None) -> bool:
    """Return whether ``value`` is a syntactically valid webhook URL.

    The value is normalised and prefixed with ``https://`` before checking,
    so stored and user-typed forms validate the same way. Hosts must be an
    IP address or a dotted domain with an alphabetic top-level label.
    """
    normalized = normalize_webhook_url(value)
    if not normalized or any(char.isspace() for char in normalized):
        return False
    try:
        parts = urlsplit(DISPLAY_URL_PREFIX + normalized)
        parts.port  # noqa: B018 - raises ValueError on malformed ports
    except ValueError:
        return False

    host = parts.hostname
    if not host:
        return False
    try:
        ipaddress.ip_address(host)
    except ValueError:
        pass
    else:
        return True

    labels = host.rstrip(".").split(".")
    if len(labels) < 2 or not _TLD_PATTERN.match(labels[-1]):
        return False
    return all(_HOST_LABEL_PATTERN.match(label) for label in labels)


@dc.dataclass(frozen=True, slots=True)
class WebhookRecord:
    """A webhook subscription.

    Attributes
    ----------
    webhook_url : str
        Target URL without its scheme.
    type : str
        Notification event filter, ``"all"`` for every event.
    id : int | None
        Backend identifier; ``None`` for records not saved yet.
    """

    webhook_url: str = ""
    type: str = DEFAULT_EVENT_FILTER
    id: int | None = None

    @classmethod
    def from_payload(cls, payload: cabc.Mapping[str, typ.Any]) -> WebhookRecord:
        """Build a record from a GraphQL notification payload."""
        identifier = payload.get("id")
        return cls(
            webhook_url=normalize_webhook_url(payload.get("webhookUrl")),
            type=str(payload.get("type") or DEFAULT_EVENT_FILTER),
            id=int(identifier) if identifier is not None else None,
        )

    def to_payload(self) -> dict[str, typ.Any]:
        """Return the persistable fields in the mutation's input shape."""
        payload: dict[str, typ.Any] = {
            "type": self.type,
            "webhookUrl": self.webhook_url,
        }
        if self.id is not None:
            payload["id"] = self.id
        return payload


@dc.dataclass(frozen=True, slots=True)
class CollectionState:
    """Snapshot of the editor handed to listeners."""

    records: tuple[WebhookRecord, ...]
    is_dirty: bool
    validity: Validity
    submission: SubmissionStatus
    error_message: str | None = None


CollectionListener = typ.Callable[[CollectionState], object]


class WebhookCollectionController:
    """Manage editable webhook records and their remote synchronisation."""

    def __init__(
        self,
        entity: CollectiveEntity,
        service: PersistenceService,
        *,
        records: cabc.Iterable[WebhookRecord] = (),
        commit_timeout: float | None = COMMIT_TIMEOUT_SECONDS,
        saved_status_seconds: float = SAVED_STATUS_SECONDS,
        scheduler: Scheduler | None = None,
    ) -> None:
        """Initialise the controller with the records from the last read.

        Parameters
        ----------
        entity : CollectiveEntity
            Account owning the webhooks; its id is sent with every commit and
            its type/host flag select the allowed event filters.
        service : PersistenceService
            Remote read/write service. ``write`` may be a coroutine function
            or a blocking function, which then runs in a worker thread.
        records : Iterable[WebhookRecord], optional
            Records from the last successful read.
        commit_timeout : float | None, optional
            Seconds to wait for a write before failing it; ``None`` waits
            forever. A blocking ``write`` cannot be interrupted: its worker
            thread keeps running after the timeout and the server may still
            apply the change. The controller then reports FAILED and stays
            dirty; re-read with ``read(..., refresh=True)`` and pass the
            result to :meth:`initialize` before retrying, or new records are
            sent again without their ids.
        saved_status_seconds : float, optional
            How long the succeeded status stays visible before reverting to
            idle.
        scheduler : Scheduler, optional
            Schedules the status reset. Defaults to the running event loop.
        """
        self.entity = entity
        self._service = service
        self.commit_timeout = commit_timeout
        self.saved_status_seconds = saved_status_seconds
        self._scheduler = scheduler
        self._listeners: list[CollectionListener] = []
        self._status_reset: TimerHandle | None = None
        self._records: list[WebhookRecord] = []
        # Per-record keys match a write's echo to records edited meanwhile.
        self._keys: list[int] = []
        self._next_key = 0
        self._is_dirty = False
        self._validity = Validity.VALID
        self._submission = SubmissionStatus.IDLE
        self._error_message: str | None = None
        self._revision = 0
        self.initialize(records)

    @property
    def records(self) -> tuple[WebhookRecord, ...]:
        return tuple(self._records)

    @property
    def is_dirty(self) -> bool:
        return self._is_dirty

    @property
    def validity(self) -> Validity:
        return self._validity

    @property
    def submission(self) -> SubmissionStatus:
        return self._submission

    @property
    def error_message(self) -> str | None:
        return self._error_message

    @property
    def state(self) -> CollectionState:
        return CollectionState(
            records=self.records,
            is_dirty=self._is_dirty,
            validity=self._validity,
            submission=self._submission,
            error_message=self._error_message,
        )

    @property
    def can_submit(self) -> bool:
        """Whether the save control should be enabled."""
        return (
            self._is_dirty
            and self._validity is Validity.VALID
            and self._submission is not SubmissionStatus.IN_FLIGHT
        )

    @property
    def event_options(self) -> tuple[str, ...]:
        """Event filters the owning account may subscribe to."""
        return derive_event_catalog(self.entity.type, self.entity.is_host)

    def subscribe(self, listener: CollectionListener) -> cabc.Callable[[], None]:
        """Call ``listener`` after every change; returns an unsubscriber."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def initialize(self, records: cabc.Iterable[WebhookRecord]) -> None:
        """Replace the records with a fresh read and reset the editor."""
        self._cancel_status_reset()
        self._records = list(records)
        self._keys = [self._new_key() for _ in self._records]
        self._is_dirty = False
        self._submission = SubmissionStatus.IDLE
        self._error_message = None
        self._revision += 1
        self._revalidate()
        self._notify()

    def reseed(self, records: cabc.Iterable[WebhookRecord]) -> bool:
        """Adopt a newer upstream read unless there are unsaved edits."""
        if self._is_dirty:
            logger.debug("keeping unsaved webhook edits over upstream read")
            return False
        self.initialize(records)
        return True

    def add_record(self) -> None:
        """Append an empty webhook subscribed to every event."""
        self._records.append(WebhookRecord())
        self._keys.append(self._new_key())
        self._mark_dirty()

    def remove_record(self, index: int) -> None:
        """Remove the record at ``index``; out-of-range indexes are ignored."""
        if not 0 <= index < len(self._records):
            logger.debug("ignoring removal of webhook %d", index)
            return
        del self._records[index]
        del self._keys[index]
        self._mark_dirty()

    def edit_field(self, index: int, field: str, value: str) -> None:
        """Update one field of the record at ``index``.

        URL values are normalised before being stored. Out-of-range indexes
        are ignored.

        Raises
        ------
        ValueError
            If ``field`` is not a webhook field.
        """
        if field in URL_FIELDS:
            changes = {"webhook_url": normalize_webhook_url(value)}
        elif field in TYPE_FIELDS:
            changes = {"type": value}
        else:
            msg = f"Unknown webhook field '{field}'."
            raise ValueError(msg)
        if not 0 <= index < len(self._records):
            logger.debug("ignoring edit of webhook %d", index)
            return
        self._records[index] = dc.replace(self._records[index], **changes)
        self._mark_dirty()

    def validate_url(self, value: str | None) -> bool:
        return validate_webhook_url(value)

    def is_record_valid(self, index: int) -> bool:
        """Return whether the record at ``index`` has a valid URL."""
        if not 0 <= index < len(self._records):
            return False
        return validate_webhook_url(self._records[index].webhook_url)

    def display_url(self, index: int) -> str:
        """Return the record's URL with ``https://`` prepended."""
        if not 0 <= index < len(self._records):
            return ""
        return DISPLAY_URL_PREFIX + self._records[index].webhook_url

    async def commit(self) -> bool:
        """Send every record to the persistence service.

        Returns
        -------
        bool
            ``True`` when the write succeeded; ``False`` when it failed or a
            commit was already in flight.
        """
        if self._submission is SubmissionStatus.IN_FLIGHT:
            logger.debug("commit already in flight; ignoring")
            return False

        self._cancel_status_reset()
        self._submission = SubmissionStatus.IN_FLIGHT
        self._error_message = None
        revision = self._revision
        committed_keys = list(self._keys)
        notifications = [record.to_payload() for record in self._records]
        self._notify()

        try:
            echoed = await self._write(notifications)
        except CommitError as exc:
            logger.warning("saving webhooks for %s failed: %s", self.entity.id, exc)
            self._fail(exc.message)
            return False
        except BaseException as exc:
            self._fail(str(exc) or exc.__class__.__name__)
            raise

        if revision == self._revision:
            self._records = list(echoed)
            self._keys = [self._new_key() for _ in self._records]
            self._is_dirty = False
        else:
            logger.debug("webhooks edited while saving; keeping local edits")
            self._adopt_ids(committed_keys, echoed)
        self._revalidate()
        self._submission = SubmissionStatus.SUCCEEDED
        self._schedule_status_reset()
        self._notify()
        return True

    async def _write(
        self, notifications: list[dict[str, typ.Any]]
    ) -> list[WebhookRecord]:
        write = self._service.write
        if inspect.iscoroutinefunction(write):
            call = write(self.entity.id, notifications)
        else:
            call = asyncio.to_thread(write, self.entity.id, notifications)
        if self.commit_timeout is None:
            return await call
        try:
            return await asyncio.wait_for(call, self.commit_timeout)
        except TimeoutError as exc:
            msg = f"Saving webhooks timed out after {self.commit_timeout:g} seconds."
            raise CommitError(CommitErrorKind.TIMEOUT, msg) from exc

    def _adopt_ids(
        self, committed_keys: list[int], echoed: cabc.Sequence[WebhookRecord]
    ) -> None:
        """Copy server-assigned ids onto records that were part of the write.

        The echo lists the saved records in the order they were sent. Local
        field values are kept; only records still lacking an id are updated.
        """
        if len(echoed) != len(committed_keys):
            logger.debug("echo does not match the committed records; ids not adopted")
            return
        saved_ids = {
            key: record.id for key, record in zip(committed_keys, echoed, strict=True)
        }
        for position, key in enumerate(self._keys):
            saved_id = saved_ids.get(key)
            record = self._records[position]
            if saved_id is not None and record.id is None:
                self._records[position] = dc.replace(record, id=saved_id)

    def _new_key(self) -> int:
        self._next_key += 1
        return self._next_key

    def _fail(self, message: str) -> None:
        self._submission = SubmissionStatus.FAILED
        self._error_message = message
        self._notify()

    def _mark_dirty(self) -> None:
        self._is_dirty = True
        self._revision += 1
        self._revalidate()
        self._notify()

    def _revalidate(self) -> None:
        valid = all(validate_webhook_url(r.webhook_url) for r in self._records)
        self._validity = Validity.VALID if valid else Validity.INVALID

    def _schedule_status_reset(self) -> None:
        scheduler = self._scheduler or asyncio.get_running_loop()
        self._status_reset = scheduler.call_later(
            self.saved_status_seconds, self._reset_status
        )

    def _cancel_status_reset(self) -> None:
        handle, self._status_reset = self._status_reset, None
        if handle is not None:
            handle.cancel()

    def _reset_status(self) -> None:
        self._status_reset = None
        if self._submission is SubmissionStatus.SUCCEEDED:
            self._submission = SubmissionStatus.IDLE
            self._notify()

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self.state
        for listener in list(self._listeners):
            listener(snapshot)


__all__ = [
    "CollectionState",
    "SubmissionStatus",
    "Validity",
    "WebhookCollectionController",
    "WebhookRecord",
    "normalize_webhook_url",
    "validate_webhook_url",
]
