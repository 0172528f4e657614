"""Master catalog of notification events a webhook can subscribe to.

The order of :data:`NOTIFICATION_EVENTS` is the canonical display order;
filtered catalogs derived from it must keep that order.
"""

from __future__ import annotations

NOTIFICATION_EVENTS: tuple[str, ...] = (
    "all",
    "collective.apply",
    "collective.approved",
    "collective.comment.created",
    "collective.created",
    "collective.expense.created",
    "collective.expense.deleted",
    "collective.expense.updated",
    "collective.expense.rejected",
    "collective.expense.approved",
    "collective.expense.paid",
    "collective.member.created",
    "collective.monthly",
    "collective.transaction.created",
    "collective.transaction.paid",
    "collective.update.created",
    "collective.update.published",
    "organization.collective.created",
    "subscription.canceled",
    "ticket.confirmed",
    "user.created",
)

COLLECTIVE_ONLY_EVENTS: frozenset[str] = frozenset(
    {
        "collective.comment.created",
        "collective.expense.created",
        "collective.expense.deleted",
        "collective.expense.updated",
        "collective.expense.rejected",
        "collective.expense.approved",
        "collective.expense.paid",
        "collective.monthly",
        "collective.transaction.created",
        "collective.transaction.paid",
        "collective.update.created",
        "collective.update.published",
    }
)
ORGANIZATION_ONLY_EVENTS: frozenset[str] = frozenset(
    {"organization.collective.created", "user.created"}
)
EVENT_ONLY_EVENTS: frozenset[str] = frozenset({"ticket.confirmed"})
HOST_ONLY_EVENTS: frozenset[str] = frozenset(
    {"collective.apply", "collective.approved", "collective.created"}
)

__all__ = [
    "COLLECTIVE_ONLY_EVENTS",
    "EVENT_ONLY_EVENTS",
    "HOST_ONLY_EVENTS",
    "NOTIFICATION_EVENTS",
    "ORGANIZATION_ONLY_EVENTS",
]
