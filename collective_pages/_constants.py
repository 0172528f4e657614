"""Common literal values used across collective_pages.

These constants keep scroll thresholds, fragment formats, and timing windows
centralized so controllers, the CLI, and tests can import the same values
without drifting. Intended for internal use within the collective_pages
package.

Examples
--------
>>> from collective_pages import _constants
>>> _constants.SECTION_FRAGMENT_TEMPLATE.format(name="about")
'section-about'
>>> _constants.DISTANCE_THRESHOLD
400
"""

SECTION_FRAGMENT_TEMPLATE = "section-{name}"

DISTANCE_THRESHOLD = 400
THROTTLE_INTERVAL = 0.1
SMALL_VIEWPORT_HEIGHT = 640
SMALL_VIEWPORT_OFFSET = 5
LARGE_VIEWPORT_OFFSET = -50

DEFAULT_EVENT_FILTER = "all"
DISPLAY_URL_PREFIX = "https://"
SAVED_STATUS_SECONDS = 3.0
COMMIT_TIMEOUT_SECONDS = 30.0
