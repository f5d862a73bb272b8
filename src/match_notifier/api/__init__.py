"""API endpoints for the match notifier."""

from match_notifier.api.captures import router as captures_router
from match_notifier.api.health import router as health_router
from match_notifier.api.ingest import router as ingest_router

__all__ = ["captures_router", "health_router", "ingest_router"]
