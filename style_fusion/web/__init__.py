"""Browser surface: upload widgets, run trigger, progress and gallery."""

from .app import create_app
from .sessions import SessionStore, WebSession

__all__ = ["SessionStore", "WebSession", "create_app"]
