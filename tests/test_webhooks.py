"""Unit tests for webhook URL handling and the editable collection controller.

Commits are driven with ``asyncio.run`` against in-memory services: a
blocking one that the controller runs in a worker thread, and an async one
gated on an :class:`asyncio.Event` to hold a commit in flight.
"""

from __future__ import annotations

import asyncio
import dataclasses as dc
import threading
import typing as typ

import pytest

from collective_pages.capabilities import CollectiveEntity, CollectiveType
from collective_pages.errors import CommitError, CommitErrorKind
from collective_pages.webhooks import (
    CollectionState,
    SubmissionStatus,
    Validity,
    WebhookCollectionController,
    WebhookRecord,
    normalize_webhook_url,
    validate_webhook_url,
)

ENTITY = CollectiveEntity(id=7, type=CollectiveType.COLLECTIVE, slug="webpack")


class EchoService:
    """Blocking service that assigns ids to new records."""

    def __init__(self, error: BaseException | None = None) -> None:
        self.error = error
        self.calls: list[tuple[int, list[dict[str, typ.Any]]]] = []

    def read(self, slug: str) -> typ.NoReturn:
        raise NotImplementedError(slug)

    def write(
        self, collective_id: int, notifications: list[dict[str, typ.Any]]
    ) -> list[WebhookRecord]:
        self.calls.append((collective_id, notifications))
        if self.error is not None:
            raise self.error
        return [
            WebhookRecord(
                webhook_url=item["webhookUrl"],
                type=item["type"],
                id=item.get("id", 100 + position),
            )
            for position, item in enumerate(notifications)
        ]


class GatedService:
    """Async service whose writes wait until ``release`` is set."""

    def __init__(self) -> None:
        self.calls = 0
        self.payloads: list[list[dict[str, typ.Any]]] = []
        self.release = asyncio.Event()

    def read(self, slug: str) -> typ.NoReturn:
        raise NotImplementedError(slug)

    async def write(
        self, collective_id: int, notifications: list[dict[str, typ.Any]]
    ) -> list[WebhookRecord]:
        self.calls += 1
        self.payloads.append(notifications)
        await self.release.wait()
        return [
            WebhookRecord(
                webhook_url=item["webhookUrl"],
                type=item["type"],
                id=item.get("id", 100 + position),
            )
            for position, item in enumerate(notifications)
        ]


class BlockingService:
    """Blocking service that holds its worker thread until ``release`` is set."""

    def __init__(self) -> None:
        self.release = threading.Event()
        self.saved: list[WebhookRecord] = []

    def read(self, slug: str) -> typ.NoReturn:
        raise NotImplementedError(slug)

    def write(
        self, collective_id: int, notifications: list[dict[str, typ.Any]]
    ) -> list[WebhookRecord]:
        self.release.wait(timeout=5)
        self.saved = [
            WebhookRecord.from_payload({"id": 100 + position, **item})
            for position, item in enumerate(notifications)
        ]
        return self.saved


@dc.dataclass
class FakeHandle:
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


@dc.dataclass
class FakeScheduler:
    calls: list[tuple[float, typ.Callable[[], object], FakeHandle]] = dc.field(
        default_factory=list
    )

    def call_later(self, delay: float, callback: typ.Callable[[], object]) -> FakeHandle:
        handle = FakeHandle()
        self.calls.append((delay, callback, handle))
        return handle


def _controller(
    service: typ.Any,
    records: tuple[WebhookRecord, ...] = (),
    **kwargs: typ.Any,
) -> WebhookCollectionController:
    kwargs.setdefault("scheduler", FakeScheduler())
    return WebhookCollectionController(ENTITY, service, records=records, **kwargs)


SAVED = (
    WebhookRecord(webhook_url="hooks.example.com/a", type="all", id=1),
    WebhookRecord(webhook_url="hooks.example.com/b", type="collective.monthly", id=2),
)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("  https://example.com/hook ", "example.com/hook"),
        ("HTTP://example.com", "example.com"),
        ("example.com/https://other", "example.com/https://other"),
        ("", ""),
        (None, ""),
    ],
)
def test_normalize_strips_leading_scheme(raw: str | None, expected: str) -> None:
    assert normalize_webhook_url(raw) == expected


@pytest.mark.parametrize(
    "url",
    [
        "example.com",
        "https://hooks.slack.com/services/T000/B000",
        "http://192.168.0.1:8080/hook",
        "sub.domain.example.org/path?query=1#frag",
        "bücher.de/hook",
    ],
)
def test_validate_accepts_urls(url: str) -> None:
    assert validate_webhook_url(url) is True


@pytest.mark.parametrize(
    "url",
    ["", "   ", "localhost", "not a url", "example.c", "-bad.com", "example.com:99999"],
)
def test_validate_rejects_urls(url: str) -> None:
    assert validate_webhook_url(url) is False


def test_display_url_restores_https_scheme() -> None:
    controller = _controller(EchoService(), SAVED)
    assert controller.display_url(0) == "https://hooks.example.com/a"
    assert controller.display_url(5) == ""


def test_fresh_controller_is_clean_and_valid() -> None:
    controller = _controller(EchoService(), SAVED)
    assert controller.is_dirty is False
    assert controller.validity is Validity.VALID
    assert controller.submission is SubmissionStatus.IDLE
    assert controller.can_submit is False


@pytest.mark.parametrize("index", [-1, 2])
def test_remove_out_of_range_is_ignored(index: int) -> None:
    controller = _controller(EchoService(), SAVED)
    controller.remove_record(index)
    assert controller.records == SAVED
    assert controller.is_dirty is False


def test_remove_record_marks_dirty() -> None:
    controller = _controller(EchoService(), SAVED)
    controller.remove_record(0)
    assert controller.records == SAVED[1:]
    assert controller.is_dirty is True
    assert controller.can_submit is True


def test_added_record_is_invalid_until_url_entered() -> None:
    controller = _controller(EchoService(), SAVED)
    controller.add_record()

    assert controller.records[-1] == WebhookRecord()
    assert controller.is_dirty is True
    assert controller.validity is Validity.INVALID
    assert controller.can_submit is False

    controller.edit_field(2, "webhookUrl", "https://new.example.com/hook")
    assert controller.records[-1].webhook_url == "new.example.com/hook"
    assert controller.validity is Validity.VALID
    assert controller.can_submit is True


def test_edit_field_rejects_unknown_field() -> None:
    controller = _controller(EchoService(), SAVED)
    with pytest.raises(ValueError, match="Unknown webhook field"):
        controller.edit_field(0, "secret", "x")


def test_edit_field_out_of_range_is_ignored() -> None:
    controller = _controller(EchoService(), SAVED)
    controller.edit_field(9, "type", "all")
    assert controller.is_dirty is False


def test_event_options_follow_entity() -> None:
    controller = _controller(EchoService())
    assert "collective.monthly" in controller.event_options
    assert "ticket.confirmed" not in controller.event_options


def test_commit_replaces_records_with_server_echo() -> None:
    service = EchoService()
    controller = _controller(service, SAVED)
    controller.add_record()
    controller.edit_field(2, "webhookUrl", "new.example.com")

    assert asyncio.run(controller.commit()) is True

    collective_id, notifications = service.calls[0]
    assert collective_id == ENTITY.id
    assert notifications[0] == {"type": "all", "webhookUrl": "hooks.example.com/a", "id": 1}
    assert "id" not in notifications[2]
    assert controller.records[2].id == 102
    assert controller.is_dirty is False
    assert controller.submission is SubmissionStatus.SUCCEEDED
    assert controller.error_message is None


def test_saved_status_reverts_to_idle() -> None:
    scheduler = FakeScheduler()
    controller = _controller(
        EchoService(), SAVED, scheduler=scheduler, saved_status_seconds=2.5
    )
    controller.remove_record(1)
    asyncio.run(controller.commit())

    delay, callback, _ = scheduler.calls[0]
    assert delay == 2.5
    callback()
    assert controller.submission is SubmissionStatus.IDLE


def test_failed_commit_keeps_local_records() -> None:
    error = CommitError.from_failure(
        field_errors=[{"message": "webhookUrl is invalid"}],
        transport_errors=[{"message": "Bad gateway"}],
    )
    service = EchoService(error=error)
    controller = _controller(service, SAVED)
    controller.remove_record(0)

    assert asyncio.run(controller.commit()) is False

    assert controller.submission is SubmissionStatus.FAILED
    assert controller.error_message == "webhookUrl is invalid"
    assert controller.records == SAVED[1:]
    assert controller.is_dirty is True


def test_unexpected_error_fails_commit_and_propagates() -> None:
    controller = _controller(EchoService(error=KeyError("boom")), SAVED)
    with pytest.raises(KeyError):
        asyncio.run(controller.commit())
    assert controller.submission is SubmissionStatus.FAILED


def test_concurrent_commit_is_ignored() -> None:
    service = GatedService()
    controller = _controller(service, SAVED)
    controller.remove_record(1)

    async def scenario() -> tuple[bool, bool]:
        first = asyncio.create_task(controller.commit())
        await asyncio.sleep(0)
        assert controller.submission is SubmissionStatus.IN_FLIGHT
        assert controller.can_submit is False
        second = await controller.commit()
        service.release.set()
        return await first, second

    first, second = asyncio.run(scenario())

    assert (first, second) == (True, False)
    assert service.calls == 1, f"expected one write, got {service.calls}"


def test_commit_times_out() -> None:
    service = GatedService()
    controller = _controller(service, SAVED, commit_timeout=0.01)
    controller.remove_record(0)

    assert asyncio.run(controller.commit()) is False

    assert controller.submission is SubmissionStatus.FAILED
    assert controller.error_message is not None
    assert "timed out" in controller.error_message
    assert controller.records == SAVED[1:]


def test_edits_during_commit_are_kept() -> None:
    service = GatedService()
    controller = _controller(service, SAVED)
    controller.remove_record(1)

    async def scenario() -> bool:
        task = asyncio.create_task(controller.commit())
        await asyncio.sleep(0)
        controller.edit_field(0, "webhookUrl", "edited.example.com")
        service.release.set()
        return await task

    assert asyncio.run(scenario()) is True

    assert controller.records[0].webhook_url == "edited.example.com"
    assert controller.is_dirty is True
    assert controller.submission is SubmissionStatus.SUCCEEDED


def test_edit_during_commit_keeps_assigned_ids() -> None:
    service = GatedService()
    controller = _controller(service)
    controller.add_record()
    controller.edit_field(0, "webhookUrl", "a.example.com")

    async def scenario() -> None:
        task = asyncio.create_task(controller.commit())
        await asyncio.sleep(0)
        controller.edit_field(0, "type", "collective.monthly")
        service.release.set()
        assert await task is True
        assert controller.is_dirty is True
        assert await controller.commit() is True

    asyncio.run(scenario())

    assert service.payloads[-1] == [
        {"type": "collective.monthly", "webhookUrl": "a.example.com", "id": 100}
    ], f"expected the second save to reuse the assigned id, got {service.payloads[-1]!r}"
    assert controller.records[0].id == 100


def test_removal_during_commit_adopts_ids_for_remaining_records() -> None:
    service = GatedService()
    controller = _controller(service)
    for url in ("a.example.com", "b.example.com"):
        controller.add_record()
        controller.edit_field(len(controller.records) - 1, "webhookUrl", url)

    async def scenario() -> bool:
        task = asyncio.create_task(controller.commit())
        await asyncio.sleep(0)
        controller.remove_record(0)
        controller.add_record()
        service.release.set()
        return await task

    assert asyncio.run(scenario()) is True

    assert [(r.webhook_url, r.id) for r in controller.records] == [
        ("b.example.com", 101),
        ("", None),
    ]
    assert controller.is_dirty is True


def test_timed_out_blocking_write_can_still_land() -> None:
    service = BlockingService()
    controller = _controller(service, SAVED, commit_timeout=0.01)
    controller.add_record()
    controller.edit_field(2, "webhookUrl", "new.example.com")

    async def scenario() -> bool:
        result = await controller.commit()
        service.release.set()
        return result

    assert asyncio.run(scenario()) is False

    assert len(service.saved) == 3, "expected the worker thread to finish the write"
    assert controller.submission is SubmissionStatus.FAILED
    assert controller.is_dirty is True
    assert controller.records[2].id is None


def test_reseed_refuses_to_drop_unsaved_edits() -> None:
    controller = _controller(EchoService(), SAVED)
    assert controller.reseed(SAVED[:1]) is True
    assert controller.records == SAVED[:1]

    controller.add_record()
    assert controller.reseed(SAVED) is False
    assert len(controller.records) == 2


def test_listeners_observe_commit_lifecycle() -> None:
    controller = _controller(EchoService(), SAVED)
    states: list[CollectionState] = []
    unsubscribe = controller.subscribe(states.append)
    controller.remove_record(0)
    asyncio.run(controller.commit())
    unsubscribe()
    controller.add_record()

    statuses = [state.submission for state in states]
    assert statuses == [
        SubmissionStatus.IDLE,
        SubmissionStatus.IN_FLIGHT,
        SubmissionStatus.SUCCEEDED,
    ]


def test_commit_error_priority() -> None:
    field = CommitError.from_failure(
        field_errors=[{"message": "bad url"}], transport_errors=[{"message": "502"}]
    )
    transport = CommitError.from_failure(
        transport_errors=[{}, {"message": "502"}], message="fallback"
    )
    generic = CommitError.from_failure()
    assert (field.kind, field.message) == (CommitErrorKind.FIELD, "bad url")
    assert (transport.kind, transport.message) == (CommitErrorKind.TRANSPORT, "502")
    assert (generic.kind, generic.message) == (
        CommitErrorKind.GENERIC,
        "Unable to save changes.",
    )


def test_listener_aliases_are_distinct() -> None:
    from collective_pages import viewport, webhooks

    assert not hasattr(webhooks, "StateListener")
    assert not hasattr(viewport, "StateListener")
    assert webhooks.CollectionListener is not viewport.ViewportListener
