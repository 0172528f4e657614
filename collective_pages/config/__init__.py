"""Load settings and credentials for collective_pages.

This subpackage parses the optional ``config/collective-pages.yaml`` file
into :class:`Settings` (API endpoint, timeouts, and the scroll tracking
thresholds in :class:`ViewportSettings`) and resolves the API token from the
command line, the environment, or ``~/.config/collective-pages/config.toml``.

Examples
--------
>>> from collective_pages.config import Settings
>>> Settings().viewport.throttle_interval
0.1
>>> from collective_pages.config import load_settings
>>> load_settings().api_url  # doctest: +SKIP
'https://api.opencollective.com/graphql/v1'
"""

from .credentials import (
    DEFAULT_CREDENTIALS_PATH,
    CredentialError,
    load_stored_token,
    resolve_api_token,
    save_token,
)
from .loader import DEFAULT_SETTINGS_PATH, load_settings
from .models import DEFAULT_API_URL, ConfigError, Settings, ViewportSettings

__all__ = [
    "DEFAULT_API_URL",
    "DEFAULT_CREDENTIALS_PATH",
    "DEFAULT_SETTINGS_PATH",
    "ConfigError",
    "CredentialError",
    "Settings",
    "ViewportSettings",
    "load_settings",
    "load_stored_token",
    "resolve_api_token",
    "save_token",
]
