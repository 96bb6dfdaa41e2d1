"""REST API layer for errwatch.

Exposes:
    create_app -- FastAPI application factory.
    build_app  -- Alias for create_app (used by errwatch.app bootstrap).
"""

from errwatch.api.app import create_app

# The bootstrap in errwatch.app imports `build_app` from this package.
build_app = create_app

__all__ = ["build_app", "create_app"]
