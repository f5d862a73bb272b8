"""Web module serving the match report page."""

from match_notifier.web.routes import router

__all__ = ["router"]
