"""Cyclopts CLI entrypoint for inspecting collective pages and their webhooks.

The ``collective-pages`` console script defined here prints the sections,
calls to action, and webhook event filters a collective page would offer, and
lists or edits a collective's webhooks through the GraphQL API using the same
controller the page editor uses.

Examples
--------
Show the sections and actions of a host organization seen by an admin:

>>> from collective_pages.cli import app
>>> app(["sections", "--type", "ORGANIZATION", "--host", "--admin"])  # doctest: +SKIP

Add a webhook and save the collection:

>>> app(
...     ["save-webhooks", "webpack", "--add", "example.com/hook", "--token", "..."]
... )  # doctest: +SKIP
"""

from __future__ import annotations

import asyncio
import dataclasses as dc
import logging
import typing as typ
from pathlib import Path

import cyclopts
from cyclopts import App, Parameter

from .capabilities import (
    CollectiveEntity,
    coerce_collective_type,
    derive_calls_to_action,
    derive_event_catalog,
    derive_page_flags,
    derive_sections,
)
from .config import load_settings, resolve_api_token
from .persistence import GraphQLPersistenceService
from .webhooks import SubmissionStatus, WebhookCollectionController

if typ.TYPE_CHECKING:
    from .config import Settings

app = App(name="collective-pages", config=cyclopts.config.Env("INPUT_", command=False))  # type: ignore[unknown-argument]


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _build_service(
    settings: Settings, token: str | None, *, required: bool, remember: bool = False
) -> GraphQLPersistenceService:
    resolved = resolve_api_token(token, required=required, save=remember)
    return GraphQLPersistenceService(
        token=resolved, api_url=settings.api_url, timeout=settings.request_timeout
    )


@app.command(help="Print the sections and calls to action of a collective page.")
def sections(
    *,
    type: typ.Annotated[  # noqa: A002 - mirrors the API field name
        str, Parameter(help="Collective type, e.g. COLLECTIVE or EVENT")
    ] = "COLLECTIVE",
    host: typ.Annotated[bool, Parameter(help="The account is a fiscal host")] = False,
    archived: typ.Annotated[bool, Parameter(help="The account is archived")] = False,
    admin: typ.Annotated[bool, Parameter(help="View the page as an admin")] = False,
) -> None:
    """Print the derived sections, calls to action, and page flags.

    Parameters
    ----------
    type : str, optional
        Collective type; unknown values are accepted and hide every
        type-specific section.
    host : bool, optional
        Whether the account hosts other collectives.
    archived : bool, optional
        Whether the account is archived.
    admin : bool, optional
        Whether the viewer administers the account.
    """
    entity = CollectiveEntity(
        id=0,
        type=coerce_collective_type(type),
        is_host=host,
        is_archived=archived,
    )
    print("sections: " + ", ".join(derive_sections(entity, admin)))
    calls_to_action = derive_calls_to_action(entity, admin)
    enabled = [name for name, value in _flags(calls_to_action) if value]
    print("calls to action: " + (", ".join(enabled) or "none"))
    for name, value in _flags(derive_page_flags(entity, admin)):
        print(f"{name}: {value}")


@app.command(help="Print the notification events a webhook may subscribe to.")
def events(
    *,
    type: typ.Annotated[  # noqa: A002 - mirrors the API field name
        str, Parameter(help="Collective type, e.g. COLLECTIVE or EVENT")
    ] = "COLLECTIVE",
    host: typ.Annotated[bool, Parameter(help="The account is a fiscal host")] = False,
) -> None:
    """Print the event filter catalog for a collective type, one per line."""
    for event in derive_event_catalog(coerce_collective_type(type), host):
        print(event)


@app.command(help="List the webhooks configured for a collective.")
def webhooks(
    slug: typ.Annotated[str, Parameter(help="Collective slug")],
    /,
    *,
    config: typ.Annotated[
        Path | None, Parameter(help="Path to settings YAML", env_var="INPUT_CONFIG")
    ] = None,
    token: typ.Annotated[
        str | None,
        Parameter(help="API token (falls back to COLLECTIVE_PAGES_TOKEN)"),
    ] = None,
    verbose: bool = False,
) -> None:
    """Print each webhook of ``slug`` as ``<n>. <event> https://<url>``."""
    _configure_logging(verbose)
    settings = load_settings(config)
    service = _build_service(settings, token, required=False)
    snapshot = service.read(slug)
    if not snapshot.records:
        print(f"{snapshot.entity.slug or slug}: no webhooks")
        return
    for number, record in enumerate(snapshot.records, start=1):
        print(f"{number}. {record.type} https://{record.webhook_url}")


@app.command(name="save-webhooks", help="Edit a collective's webhooks and save them.")
def save_webhooks(
    slug: typ.Annotated[str, Parameter(help="Collective slug")],
    /,
    *,
    add: typ.Annotated[
        list[str] | None, Parameter(help="URL of a webhook to add")
    ] = None,
    event: typ.Annotated[
        str, Parameter(help="Event filter for added webhooks")
    ] = "all",
    remove: typ.Annotated[
        list[int] | None, Parameter(help="1-based number of a webhook to remove")
    ] = None,
    config: typ.Annotated[
        Path | None, Parameter(help="Path to settings YAML", env_var="INPUT_CONFIG")
    ] = None,
    token: typ.Annotated[
        str | None,
        Parameter(help="API token (falls back to COLLECTIVE_PAGES_TOKEN)"),
    ] = None,
    remember_token: typ.Annotated[
        bool, Parameter(help="Store the given token in the credentials file")
    ] = False,
    verbose: bool = False,
) -> None:
    """Apply removals then additions to the webhooks of ``slug`` and commit.

    Parameters
    ----------
    slug : str
        Collective slug.
    add : list[str] or None, optional
        URLs to append; the scheme is optional.
    event : str, optional
        Event filter for the appended webhooks; must be offered for the
        collective's type.
    remove : list[int] or None, optional
        1-based numbers, as printed by ``webhooks``, of records to remove.
    config : Path or None, optional
        Settings YAML (overridable via ``INPUT_CONFIG``).
    token : str or None, optional
        API token; falls back to the environment and the stored credentials.
    remember_token : bool, optional
        Save an explicit or environment token for later runs.
    verbose : bool, optional
        Log debug output.

    Raises
    ------
    ValueError
        If ``event`` is not offered for the collective or an added URL is
        invalid.
    SystemExit
        With status 1 when the API rejects the change.
    """
    _configure_logging(verbose)
    settings = load_settings(config)
    service = _build_service(
        settings, token, required=True, remember=remember_token
    )
    snapshot = service.read(slug)
    controller = WebhookCollectionController(
        snapshot.entity,
        service,
        records=snapshot.records,
        commit_timeout=settings.commit_timeout,
        saved_status_seconds=settings.saved_status_seconds,
    )
    if add and event not in controller.event_options:
        options = ", ".join(controller.event_options)
        msg = f"Unknown event '{event}' for this collective. Choose one of: {options}"
        raise ValueError(msg)

    for number in sorted(set(remove or ()), reverse=True):
        controller.remove_record(number - 1)
    for url in add or ():
        controller.add_record()
        index = len(controller.records) - 1
        controller.edit_field(index, "webhookUrl", url)
        controller.edit_field(index, "type", event)
        if not controller.is_record_valid(index):
            msg = f"Invalid webhook URL: {url!r}"
            raise ValueError(msg)

    if not controller.can_submit:
        print("nothing to save")
        return

    asyncio.run(controller.commit())
    if controller.submission is not SubmissionStatus.SUCCEEDED:
        print(f"error: {controller.error_message}")
        raise SystemExit(1)
    print(f"saved {len(controller.records)} webhooks")
    for number, record in enumerate(controller.records, start=1):
        print(f"{number}. {record.type} {controller.display_url(number - 1)}")


def _flags(value: typ.Any) -> list[tuple[str, object]]:
    """Return ``(field, value)`` pairs of a dataclass instance."""
    return [(field.name, getattr(value, field.name)) for field in dc.fields(value)]


def main() -> None:
    """Invoke the Cyclopts application behind the `collective-pages` command."""
    app()


if __name__ == "__main__":  # pragma: no cover - manual invocation helper
    main()
