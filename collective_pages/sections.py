"""Registry of section anchors mounted by the hosting page.

The page registers an anchor for every section element it mounts, plus one
for the sticky navbar, and unregisters them on teardown. The viewport tracker
only reads offsets through :meth:`SectionRegistry.current_offset_top`, so
positions that shift on resize or late content loads are always read fresh.
"""

from __future__ import annotations

import dataclasses as dc
import logging
import typing as typ

logger = logging.getLogger(__name__)

NAVBAR_ANCHOR = "__navbar__"


class AnchorMetrics(typ.Protocol):
    """Anything exposing a document-relative ``offset_top``."""

    @property
    def offset_top(self) -> float: ...


@dc.dataclass(slots=True)
class SectionAnchor:
    """Mutable anchor metrics for a mounted section element.

    Attributes
    ----------
    name : str
        Section identifier (also used to build the URL fragment).
    offset_top : float
        Distance from the top of the document to the anchor, in viewport
        units.
    """

    name: str
    offset_top: float


class SectionRegistry:
    """Map section identifiers to the anchor metrics currently mounted."""

    def __init__(self) -> None:
        self._anchors: dict[str, AnchorMetrics] = {}

    def register(self, section_id: str, metrics: AnchorMetrics) -> None:
        """Record ``metrics`` for ``section_id``, replacing any earlier anchor."""
        self._anchors[str(section_id)] = metrics

    def unregister(self, section_id: str) -> None:
        """Forget the anchor for ``section_id``; unknown ids are ignored."""
        self._anchors.pop(str(section_id), None)

    def register_navbar(self, metrics: AnchorMetrics) -> None:
        """Record the in-flow anchor of the sticky navbar."""
        self.register(NAVBAR_ANCHOR, metrics)

    def unregister_navbar(self) -> None:
        self.unregister(NAVBAR_ANCHOR)

    def update(self, section_id: str, offset_top: float) -> None:
        """Move a registered :class:`SectionAnchor` after a layout change."""
        anchor = self._anchors.get(str(section_id))
        if anchor is None:
            logger.debug("ignoring offset update for unmounted %s", section_id)
            return
        if not isinstance(anchor, SectionAnchor):
            msg = f"Anchor '{section_id}' is not a SectionAnchor and cannot be moved."
            raise TypeError(msg)
        anchor.offset_top = offset_top

    def current_offset_top(self, section_id: str) -> float | None:
        """Return the anchor's current offset, or ``None`` when not mounted."""
        anchor = self._anchors.get(str(section_id))
        if anchor is None:
            return None
        return float(anchor.offset_top)

    def navbar_offset_top(self) -> float | None:
        return self.current_offset_top(NAVBAR_ANCHOR)

    def __contains__(self, section_id: object) -> bool:
        return str(section_id) in self._anchors

    def __len__(self) -> int:
        return len(self._anchors)


__all__ = ["NAVBAR_ANCHOR", "AnchorMetrics", "SectionAnchor", "SectionRegistry"]
