"""FastAPI HTTP layer package.

Public re-export so callers can write::

    from textrag.api import app

    uvicorn textrag.api:app --reload
"""

from textrag.api.app import app, create_app

__all__ = ["app", "create_app"]
