r"""Synchronise the sticky navbar and active section with the scroll position.

:class:`ViewportSectionTracker` listens to scroll notifications from an
injected :class:`ViewportMetrics` source, reads anchor offsets from a
:class:`~collective_pages.sections.SectionRegistry`, and publishes a
:class:`ViewportState` to its listeners whenever the navbar pins/unpins or the
highlighted section changes.

Scroll ticks are throttled with an explicit ``last_fired`` timestamp. The
first tick of a burst runs immediately; later ticks inside the window are
coalesced into a single trailing evaluation. It runs through the injected
scheduler (``asyncio`` loops satisfy the protocol), else through the running
event loop; hosts without a loop call :meth:`ViewportSectionTracker.flush`.

Example
-------
>>> from collective_pages.sections import SectionAnchor, SectionRegistry
>>> registry = SectionRegistry()
>>> registry.register_navbar(SectionAnchor("navbar", 200))
>>> for name, top in (("about", 0), ("budget", 500)):
...     registry.register(name, SectionAnchor(name, top))
>>> scan_active_section(("about", "budget"), registry, 500, 800)
'budget'
"""

from __future__ import annotations

import asyncio
import dataclasses as dc
import logging
import time
import typing as typ

from ._constants import DISTANCE_THRESHOLD, SECTION_FRAGMENT_TEMPLATE
from .config import ViewportSettings

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from .sections import SectionRegistry

logger = logging.getLogger(__name__)


class ViewportMetrics(typ.Protocol):
    """Scroll position, viewport size, and scroll notifications."""

    @property
    def scroll_y(self) -> float: ...

    @property
    def viewport_height(self) -> float: ...

    def scroll_to(self, y: float) -> None: ...

    def subscribe(
        self, callback: cabc.Callable[[], object]
    ) -> cabc.Callable[[], None]: ...


class HistorySink(typ.Protocol):
    """Browsing history that can record a fragment without navigating."""

    @property
    def supports_push_state(self) -> bool: ...

    def push_fragment(self, fragment: str) -> None: ...

    def assign_fragment(self, fragment: str) -> None: ...


class TimerHandle(typ.Protocol):
    def cancel(self) -> None: ...


class Scheduler(typ.Protocol):
    """Deferred callback scheduling, e.g. an ``asyncio`` event loop."""

    def call_later(
        self, delay: float, callback: cabc.Callable[[], object]
    ) -> TimerHandle: ...


@dc.dataclass(frozen=True, slots=True)
class ViewportState:
    """Navbar pinning and section highlight derived from the scroll position."""

    is_nav_fixed: bool = False
    active_section: str | None = None


ViewportListener = typ.Callable[[ViewportState], object]


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


def scan_active_section(
    sections: cabc.Sequence[str],
    registry: SectionRegistry,
    scroll_y: float,
    viewport_height: float,
    distance_threshold: float = DISTANCE_THRESHOLD,
) -> str | None:
    """Return the last section whose anchor sits above the view threshold.

    Sections are scanned from last to first and the first one satisfying
    ``offset_top < scroll_y + viewport_height - distance_threshold`` wins.
    Sections without a mounted anchor are skipped.
    """
    current_view_bottom = scroll_y + viewport_height - distance_threshold
    for section in reversed(sections):
        offset_top = registry.current_offset_top(section)
        if offset_top is not None and current_view_bottom > offset_top:
            return section
    return None


class ViewportSectionTracker:
    """Derive :class:`ViewportState` from scroll ticks and anchor offsets."""

    def __init__(
        self,
        registry: SectionRegistry,
        metrics: ViewportMetrics,
        *,
        sections: cabc.Sequence[str] = (),
        history: HistorySink | None = None,
        settings: ViewportSettings | None = None,
        clock: cabc.Callable[[], float] = time.monotonic,
        scheduler: Scheduler | None = None,
    ) -> None:
        """Initialise the tracker without subscribing to scroll events.

        Parameters
        ----------
        registry : SectionRegistry
            Anchors mounted by the page, read on every tick.
        metrics : ViewportMetrics
            Source of the scroll position, viewport height, and scroll
            notifications.
        sections : Sequence[str], optional
            Section identifiers in page order, usually the output of
            :func:`~collective_pages.capabilities.derive_sections`.
        history : HistorySink, optional
            Where section navigation is recorded. Navigation is not recorded
            when omitted.
        settings : ViewportSettings, optional
            Threshold, throttle, and offset values. Defaults to
            :class:`ViewportSettings`.
        clock : Callable[[], float], optional
            Monotonic time source in seconds.
        scheduler : Scheduler, optional
            Used to run the trailing evaluation of a throttled burst. Defaults
            to the running event loop; outside a loop the host must call
            :meth:`flush`.
        """
        self.registry = registry
        self.metrics = metrics
        self.sections: tuple[str, ...] = tuple(str(s) for s in sections)
        self.history = history
        self.settings = settings or ViewportSettings()
        self._clock = clock
        self._scheduler = scheduler
        self._state = ViewportState()
        self._listeners: list[ViewportListener] = []
        self._last_fired: float | None = None
        self._pending = False
        self._trailing_handle: TimerHandle | None = None
        self._unsubscribe: cabc.Callable[[], None] | None = None

    @property
    def state(self) -> ViewportState:
        return self._state

    @property
    def displayed_section(self) -> str | None:
        """The highlighted section, defaulting to the first one."""
        if self._state.active_section is not None:
            return self._state.active_section
        return self.sections[0] if self.sections else None

    @property
    def is_running(self) -> bool:
        return self._unsubscribe is not None

    def set_sections(self, sections: cabc.Sequence[str]) -> None:
        """Replace the ordered section list after the entity changed."""
        self.sections = tuple(str(s) for s in sections)

    def subscribe(self, listener: ViewportListener) -> cabc.Callable[[], None]:
        """Call ``listener`` with each new state; returns an unsubscriber."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def start(self) -> None:
        """Attach to scroll notifications and evaluate the restored position."""
        if self._unsubscribe is not None:
            return
        self._unsubscribe = self.metrics.subscribe(self.on_scroll)
        self.on_scroll()

    def stop(self) -> None:
        """Detach from scroll notifications and drop any pending tick."""
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        self._cancel_trailing()
        self._pending = False
        if unsubscribe is not None:
            unsubscribe()

    def __enter__(self) -> ViewportSectionTracker:
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    def on_scroll(self, now: float | None = None) -> bool:
        """Handle a scroll notification, throttled to one tick per interval.

        Returns
        -------
        bool
            ``True`` when this call evaluated the scroll position and the
            state changed; coalesced calls return ``False``.
        """
        now = self._clock() if now is None else now
        interval = self.settings.throttle_interval
        if self._last_fired is None or now - self._last_fired >= interval:
            self._cancel_trailing()
            self._pending = False
            self._last_fired = now
            return self._tick()

        if not self._pending:
            self._pending = True
            scheduler = self._scheduler or _running_loop()
            if scheduler is not None:
                delay = interval - (now - self._last_fired)
                self._trailing_handle = scheduler.call_later(
                    delay, self._fire_trailing
                )
        return False

    def flush(self, now: float | None = None) -> bool:
        """Run the coalesced trailing tick once its window has elapsed."""
        if not self._pending:
            return False
        now = self._clock() if now is None else now
        if self._last_fired is not None and (
            now - self._last_fired < self.settings.throttle_interval
        ):
            return False
        self._cancel_trailing()
        self._pending = False
        self._last_fired = now
        return self._tick()

    def on_section_activate(self, section: str) -> bool:
        """Scroll to ``section`` and record its fragment in the history.

        Returns ``False`` without side effects when the section has no
        mounted anchor.
        """
        offset_top = self.registry.current_offset_top(section)
        if offset_top is None:
            logger.debug("section %s is not mounted; ignoring activation", section)
            return False

        settings = self.settings
        if self.metrics.viewport_height < settings.small_viewport_height:
            scroll_offset = settings.small_viewport_offset
        else:
            scroll_offset = settings.large_viewport_offset
        self.metrics.scroll_to(offset_top + scroll_offset)

        if self.history is not None:
            fragment = SECTION_FRAGMENT_TEMPLATE.format(name=section)
            if self.history.supports_push_state:
                self.history.push_fragment(fragment)
            else:
                self.history.assign_fragment(fragment)
        return True

    def on_collective_click(self) -> None:
        """Scroll back to the top of the page."""
        self.metrics.scroll_to(0)

    def _fire_trailing(self) -> None:
        self._trailing_handle = None
        if not self._pending:
            return
        self._pending = False
        self._last_fired = self._clock()
        self._tick()

    def _cancel_trailing(self) -> None:
        handle, self._trailing_handle = self._trailing_handle, None
        if handle is not None:
            handle.cancel()

    def _tick(self) -> bool:
        navbar_offset = self.registry.navbar_offset_top()
        if navbar_offset is None:
            # Anchors vanish briefly while the page remounts.
            logger.debug("navbar anchor missing; skipping scroll tick")
            return False

        scroll_y = self.metrics.scroll_y
        is_nav_fixed = navbar_offset - scroll_y <= 0
        active_section = scan_active_section(
            self.sections,
            self.registry,
            scroll_y,
            self.metrics.viewport_height,
            self.settings.distance_threshold,
        )
        if active_section is None:
            active_section = self._state.active_section

        new_state = ViewportState(
            is_nav_fixed=is_nav_fixed, active_section=active_section
        )
        if new_state == self._state:
            return False
        logger.debug("viewport state %s -> %s", self._state, new_state)
        self._state = new_state
        for listener in list(self._listeners):
            listener(new_state)
        return True


__all__ = [
    "HistorySink",
    "Scheduler",
    "TimerHandle",
    "ViewportMetrics",
    "ViewportSectionTracker",
    "ViewportState",
    "scan_active_section",
]
