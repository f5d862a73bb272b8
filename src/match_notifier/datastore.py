"""Supabase client factory shared by the report page and the subscriber."""

import structlog
from supabase import AsyncClient, acreate_client

from match_notifier.config import Settings

logger = structlog.get_logger(__name__)


async def create_datastore_client(settings: Settings) -> AsyncClient | None:
    """Create the async Supabase client, or None when credentials are missing."""
    if not settings.supabase_configured:
        logger.warning("datastore_not_configured")
        return None

    client = await acreate_client(settings.supabase_url, settings.supabase_key)
    logger.info("datastore_connected", url=settings.supabase_url)
    return client
