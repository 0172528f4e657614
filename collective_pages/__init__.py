"""Page orchestration for collective pages on a donation platform.

This package derives which sections and calls to action a collective page
shows, tracks the section in view while the page scrolls, and edits a
collective's webhooks with a single atomic commit to the GraphQL API.

Exports
-------
- ``app``: Cyclopts application entry for subcommands.
- ``main``: Convenience function that invokes the Cyclopts app.

Examples
--------
>>> from collective_pages import main
>>> main()  # doctest: +SKIP
>>> from collective_pages import app
>>> callable(app)
True
"""

from __future__ import annotations

from .cli import app, main

__all__ = ["app", "main"]
