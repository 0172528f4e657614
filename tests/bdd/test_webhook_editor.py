"""Behaviour tests for the webhook editor using pytest-bdd.

These scenarios drive :class:`~collective_pages.webhooks.WebhookCollectionController`
the way the webhook settings page does: records are added, edited, and
removed locally, then saved with a single commit against an in-memory
service that echoes the saved list or rejects it.

Usage
-----
Run ``pytest tests/bdd/test_webhook_editor.py -v`` to execute only these
scenarios.
"""

from __future__ import annotations

import asyncio
import typing as typ
from pathlib import Path

import pytest
from pytest_bdd import given, parsers, scenarios, then, when

from collective_pages.capabilities import CollectiveEntity, CollectiveType
from collective_pages.errors import CommitError
from collective_pages.webhooks import (
    SubmissionStatus,
    WebhookCollectionController,
    WebhookRecord,
)

FEATURE_FILE = (
    Path(__file__).resolve().parents[2] / "features" / "webhook_editor.feature"
)
scenarios(FEATURE_FILE)

ScenarioState = dict[str, typ.Any]


class RecordingService:
    """In-memory persistence that assigns ids or raises a stored error."""

    def __init__(self) -> None:
        self.error: CommitError | None = None
        self.saved: list[WebhookRecord] = []

    def write(
        self, collective_id: int, notifications: list[dict[str, typ.Any]]
    ) -> list[WebhookRecord]:
        if self.error is not None:
            raise self.error
        self.saved = [
            WebhookRecord.from_payload({"id": position + 1, **item})
            for position, item in enumerate(notifications)
        ]
        return self.saved


@pytest.fixture
def scenario_state() -> ScenarioState:
    """Share mutable scenario data across pytest-bdd steps.

    Returns
    -------
    ScenarioState
        Mutable dictionary used to exchange state between ``given``, ``when``,
        and ``then`` steps.
    """
    return {}


def _controller(scenario_state: ScenarioState) -> WebhookCollectionController:
    return typ.cast("WebhookCollectionController", scenario_state["controller"])


@given(parsers.re(r"a collective with (?P<count>\d+) saved webhooks?"))
def given_collective(scenario_state: ScenarioState, count: str) -> None:
    """Create a controller seeded with ``count`` saved webhooks."""
    service = RecordingService()
    records = [
        WebhookRecord(webhook_url=f"hooks.example.com/{n}", id=n)
        for n in range(1, int(count) + 1)
    ]
    entity = CollectiveEntity(id=7, type=CollectiveType.COLLECTIVE, slug="webpack")
    scenario_state["service"] = service
    scenario_state["controller"] = WebhookCollectionController(
        entity, service, records=records
    )


@given(parsers.parse('the server rejects the URL with "{message}"'))
def given_server_rejects(scenario_state: ScenarioState, message: str) -> None:
    service = typ.cast("RecordingService", scenario_state["service"])
    service.error = CommitError.from_failure(field_errors=[{"message": message}])


@when(parsers.re(r'I add a webhook for "(?P<url>[^"]*)"'))
def when_add_webhook(scenario_state: ScenarioState, url: str) -> None:
    controller = _controller(scenario_state)
    controller.add_record()
    controller.edit_field(len(controller.records) - 1, "webhookUrl", url)


@when(parsers.parse("I remove webhook {number:d}"))
def when_remove_webhook(scenario_state: ScenarioState, number: int) -> None:
    _controller(scenario_state).remove_record(number - 1)


@when("I save the webhooks")
def when_save(scenario_state: ScenarioState) -> None:
    scenario_state["result"] = asyncio.run(_controller(scenario_state).commit())


@then("the save succeeds")
def then_save_succeeds(scenario_state: ScenarioState) -> None:
    controller = _controller(scenario_state)
    assert scenario_state["result"] is True, (
        f"expected commit to succeed, got error {controller.error_message!r}"
    )
    assert controller.submission is SubmissionStatus.SUCCEEDED
    assert controller.is_dirty is False


@then(parsers.parse("the collective has {count:d} saved webhooks"))
def then_saved_count(scenario_state: ScenarioState, count: int) -> None:
    service = typ.cast("RecordingService", scenario_state["service"])
    assert len(service.saved) == count, (
        f"expected {count} saved webhooks, got {len(service.saved)}"
    )
    assert all(record.id is not None for record in _controller(scenario_state).records)


@then(parsers.parse('webhook {number:d} is displayed as "{url}"'))
def then_displayed_as(scenario_state: ScenarioState, number: int, url: str) -> None:
    displayed = _controller(scenario_state).display_url(number - 1)
    assert displayed == url, f"expected {url!r}, got {displayed!r}"


@then("the webhooks cannot be saved")
def then_cannot_save(scenario_state: ScenarioState) -> None:
    controller = _controller(scenario_state)
    assert controller.is_dirty is True
    assert controller.can_submit is False, "expected the blank URL to block saving"


@then(parsers.parse('the save fails with "{message}"'))
def then_save_fails(scenario_state: ScenarioState, message: str) -> None:
    controller = _controller(scenario_state)
    assert scenario_state["result"] is False
    assert controller.submission is SubmissionStatus.FAILED
    assert controller.error_message == message


@then(parsers.re(r"(?P<count>\d+) webhooks? (?:is|are) being edited"))
def then_records_in_editor(scenario_state: ScenarioState, count: str) -> None:
    controller = _controller(scenario_state)
    assert len(controller.records) == int(count)
    assert controller.is_dirty is True
