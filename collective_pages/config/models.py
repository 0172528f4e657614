"""Typed dataclasses describing collective_pages settings."""

from __future__ import annotations

import dataclasses as dc

from .._constants import (
    COMMIT_TIMEOUT_SECONDS,
    DISTANCE_THRESHOLD,
    LARGE_VIEWPORT_OFFSET,
    SAVED_STATUS_SECONDS,
    SMALL_VIEWPORT_HEIGHT,
    SMALL_VIEWPORT_OFFSET,
    THROTTLE_INTERVAL,
)

DEFAULT_API_URL = "https://api.opencollective.com/graphql/v1"


class ConfigError(ValueError):
    """Raised when the settings file is invalid or incomplete."""


@dc.dataclass(frozen=True, slots=True)
class ViewportSettings:
    """Scroll tracking thresholds, in viewport units and seconds."""

    distance_threshold: float = DISTANCE_THRESHOLD
    throttle_interval: float = THROTTLE_INTERVAL
    small_viewport_height: float = SMALL_VIEWPORT_HEIGHT
    small_viewport_offset: float = SMALL_VIEWPORT_OFFSET
    large_viewport_offset: float = LARGE_VIEWPORT_OFFSET


@dc.dataclass(frozen=True, slots=True)
class Settings:
    """Resolved settings for the API client and the page controllers."""

    api_url: str = DEFAULT_API_URL
    request_timeout: float = 10.0
    commit_timeout: float | None = COMMIT_TIMEOUT_SECONDS
    saved_status_seconds: float = SAVED_STATUS_SECONDS
    viewport: ViewportSettings = dc.field(default_factory=ViewportSettings)


__all__ = ["DEFAULT_API_URL", "ConfigError", "Settings", "ViewportSettings"]
