r"""Derive visibility and capability flags for a collective profile page.

Every function here is a pure mapping from a handful of entity attributes
(type, host status, archive status) plus the viewer's admin flag to the
sections, calls to action, and event filters the page should offer. Results
are memoised on their hashable inputs with :func:`functools.lru_cache`, so
callers can recompute them on every render.

Example
-------
>>> from collective_pages.capabilities import CollectiveType, derive_event_catalog
>>> catalog = derive_event_catalog(CollectiveType.EVENT, False)
>>> "ticket.confirmed" in catalog
True
>>> "collective.monthly" in catalog
False
"""

from __future__ import annotations

import dataclasses as dc
import enum
import functools
import typing as typ

from .notification_events import (
    COLLECTIVE_ONLY_EVENTS,
    EVENT_ONLY_EVENTS,
    HOST_ONLY_EVENTS,
    NOTIFICATION_EVENTS,
    ORGANIZATION_ONLY_EVENTS,
)

if typ.TYPE_CHECKING:
    import collections.abc as cabc


class CollectiveType(enum.StrEnum):
    """Account types known to the profile page."""

    USER = "USER"
    INDIVIDUAL = "INDIVIDUAL"
    COLLECTIVE = "COLLECTIVE"
    ORGANIZATION = "ORGANIZATION"
    EVENT = "EVENT"
    FUND = "FUND"
    PROJECT = "PROJECT"


class Section(enum.StrEnum):
    """Content blocks stacked vertically on the profile page."""

    ABOUT = "about"
    CONTRIBUTE = "contribute"
    CONTRIBUTORS = "contributors"
    UPDATES = "updates"
    BUDGET = "budget"
    CONTRIBUTIONS = "contributions"
    TRANSACTIONS = "transactions"


SECTION_ORDER: tuple[Section, ...] = tuple(Section)

_FUNDRAISING_TYPES = frozenset(
    {
        CollectiveType.COLLECTIVE,
        CollectiveType.EVENT,
        CollectiveType.FUND,
        CollectiveType.PROJECT,
    }
)
_ACCOUNT_TYPES = frozenset(
    {
        CollectiveType.USER,
        CollectiveType.INDIVIDUAL,
        CollectiveType.ORGANIZATION,
    }
)
_ROUND_AVATAR_TYPES = frozenset({CollectiveType.USER, CollectiveType.INDIVIDUAL})

EntityType = CollectiveType | str


def coerce_collective_type(value: object) -> EntityType:
    """Return the matching :class:`CollectiveType` or the raw upper-cased text.

    Unknown values are kept as plain strings so that every type-specific rule
    treats them as "not this type".
    """
    text = str(value or "").strip().upper()
    try:
        return CollectiveType(text)
    except ValueError:
        return text


@dc.dataclass(frozen=True, slots=True)
class CollectiveEntity:
    """The collective or profile being viewed.

    Attributes
    ----------
    id : int
        Backend identifier used when persisting changes.
    type : CollectiveType | str
        Account type; unknown types are preserved as strings.
    is_host : bool
        Whether the account hosts other collectives.
    is_archived : bool
        Whether the account has been archived.
    slug : str
        URL slug used to query the account.
    name : str
        Display name.
    image_url : str | None
        Current avatar URL, if any.
    long_description : str | None
        Rich "about" text, if any.
    """

    id: int
    type: EntityType
    is_host: bool = False
    is_archived: bool = False
    slug: str = ""
    name: str = ""
    image_url: str | None = None
    long_description: str | None = None

    @classmethod
    def from_payload(cls, payload: cabc.Mapping[str, typ.Any]) -> CollectiveEntity:
        """Build an entity from a GraphQL ``Collective`` payload."""
        try:
            identifier = int(payload["id"])
        except (KeyError, TypeError, ValueError) as exc:
            msg = f"Collective payload is missing a numeric 'id': {payload!r}"
            raise ValueError(msg) from exc
        return cls(
            id=identifier,
            type=coerce_collective_type(payload.get("type")),
            is_host=bool(payload.get("isHost")),
            is_archived=bool(payload.get("isArchived")),
            slug=str(payload.get("slug") or ""),
            name=str(payload.get("name") or ""),
            image_url=payload.get("imageUrl"),
            long_description=payload.get("longDescription"),
        )


@dc.dataclass(frozen=True, slots=True)
class CallsToAction:
    """Profile actions offered in the hero and navbar."""

    has_contact: bool
    has_submit_expense: bool
    has_apply: bool
    has_dashboard: bool
    has_manage_subscriptions: bool


@dc.dataclass(frozen=True, slots=True)
class PageFlags:
    """Presentation flags derived from the entity and the viewer."""

    is_grayscale: bool
    can_edit_about: bool
    can_edit_avatar: bool
    can_see_update_drafts: bool
    avatar_border_radius: str
    about_title_variant: str


def derive_sections(entity: CollectiveEntity, is_admin: bool) -> tuple[Section, ...]:
    """Return the sections shown for ``entity`` in canonical page order."""
    return _sections_for(
        entity.type, entity.is_host, entity.is_archived, bool(is_admin)
    )


@functools.lru_cache(maxsize=64)
def _sections_for(
    entity_type: EntityType, is_host: bool, is_archived: bool, is_admin: bool
) -> tuple[Section, ...]:
    visible: set[Section] = {Section.ABOUT}
    if entity_type in _FUNDRAISING_TYPES:
        visible |= {
            Section.CONTRIBUTE,
            Section.CONTRIBUTORS,
            Section.UPDATES,
            Section.BUDGET,
        }
        if is_archived and not is_admin:
            visible.discard(Section.UPDATES)
    if entity_type in _ACCOUNT_TYPES:
        visible |= {Section.CONTRIBUTIONS, Section.TRANSACTIONS}
    if is_host:
        visible.add(Section.CONTRIBUTORS)
    return tuple(section for section in SECTION_ORDER if section in visible)


def derive_calls_to_action(entity: CollectiveEntity, is_admin: bool) -> CallsToAction:
    """Return the calls to action for ``entity`` as seen by the viewer."""
    return _calls_to_action_for(entity.type, entity.is_host, bool(is_admin))


@functools.lru_cache(maxsize=64)
def _calls_to_action_for(
    entity_type: EntityType, is_host: bool, is_admin: bool
) -> CallsToAction:
    is_collective = entity_type == CollectiveType.COLLECTIVE
    return CallsToAction(
        has_contact=is_collective,
        has_submit_expense=is_collective,
        has_apply=is_host,
        has_dashboard=is_host and is_admin,
        has_manage_subscriptions=not is_host and is_admin and not is_collective,
    )


@functools.lru_cache(maxsize=64)
def derive_event_catalog(entity_type: EntityType, is_host: bool) -> tuple[str, ...]:
    """Return the notification events a webhook may subscribe to.

    Parameters
    ----------
    entity_type : CollectiveType | str
        Type of the account owning the webhooks.
    is_host : bool
        Whether the account is a fiscal host.

    Returns
    -------
    tuple[str, ...]
        The master catalog with every excluded group removed, in catalog
        order.
    """
    excluded: set[str] = set()
    if entity_type != CollectiveType.COLLECTIVE:
        excluded |= COLLECTIVE_ONLY_EVENTS
    if entity_type != CollectiveType.ORGANIZATION:
        excluded |= ORGANIZATION_ONLY_EVENTS
    if entity_type != CollectiveType.EVENT:
        excluded |= EVENT_ONLY_EVENTS
    if not is_host:
        excluded |= HOST_ONLY_EVENTS
    return tuple(event for event in NOTIFICATION_EVENTS if event not in excluded)


def derive_page_flags(entity: CollectiveEntity, is_admin: bool) -> PageFlags:
    """Return presentation flags for ``entity``.

    Archived accounts render in grayscale and their about section is locked
    even for admins.
    """
    is_admin = bool(is_admin)
    return PageFlags(
        is_grayscale=entity.is_archived,
        can_edit_about=is_admin and not entity.is_archived,
        can_edit_avatar=is_admin,
        can_see_update_drafts=is_admin,
        avatar_border_radius=(
            "50%" if entity.type in _ROUND_AVATAR_TYPES else "25%"
        ),
        about_title_variant=(
            "mission" if entity.type == CollectiveType.COLLECTIVE else "about"
        ),
    )


__all__ = [
    "SECTION_ORDER",
    "CallsToAction",
    "CollectiveEntity",
    "CollectiveType",
    "PageFlags",
    "Section",
    "coerce_collective_type",
    "derive_calls_to_action",
    "derive_event_catalog",
    "derive_page_flags",
    "derive_sections",
]
