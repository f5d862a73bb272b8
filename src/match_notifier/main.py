"""FastAPI application entry point for the match notifier.

Configures the FastAPI app with routers, middleware, and lifecycle management.
The lifespan owns the long-lived pieces: dispatcher, capture coordinator,
datastore client and change-stream subscriber.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from match_notifier import __version__
from match_notifier.api import captures_router, health_router, ingest_router
from match_notifier.capture import CaptureCoordinator
from match_notifier.config import Settings, get_settings
from match_notifier.datastore import create_datastore_client
from match_notifier.errors import SubscriptionError
from match_notifier.logging import LoggingMiddleware, setup_logging
from match_notifier.notifications import WebhookDispatcher
from match_notifier.realtime import ChangeEventSubscriber
from match_notifier.web import router as web_router

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan context manager.

    Handles startup and shutdown events for the application.
    """
    settings: Settings = app.state.settings

    logger.info(
        "server_starting",
        version=__version__,
        report_url=settings.report_url,
        screenshot_dir=str(settings.screenshot_dir),
        retention_mode=settings.retention_mode.value,
        webhook_configured=settings.webhook_url is not None,
        log_level=settings.log_level,
    )

    dispatcher = WebhookDispatcher(settings.webhook_url, timeout=settings.webhook_timeout)
    coordinator = CaptureCoordinator.from_settings(settings, dispatcher=dispatcher)
    app.state.dispatcher = dispatcher
    app.state.coordinator = coordinator

    app.state.datastore = await create_datastore_client(settings)
    app.state.subscriber = None
    if app.state.datastore is not None:
        subscriber = ChangeEventSubscriber(
            app.state.datastore,
            coordinator,
            schema=settings.watch_schema,
            table=settings.watch_table,
            event=settings.watch_event,
            channel_name=settings.channel_name,
        )
        try:
            await subscriber.start()
        except SubscriptionError as e:
            logger.error("subscription_failed", error=str(e))
        app.state.subscriber = subscriber

    yield

    # Shutdown
    if app.state.subscriber is not None:
        await app.state.subscriber.stop()
    await coordinator.wait_idle()
    logger.info("server_stopping", **coordinator.get_status())


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Match Notifier",
        description="Captures the match report page on data changes and posts it to a webhook",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.middleware("http")(LoggingMiddleware(app))

    # Requests without an Origin header are not subject to CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(web_router)
    app.include_router(ingest_router)
    app.include_router(captures_router)
    app.include_router(health_router)

    # Mounted last so API routes take precedence
    if settings.static_dir.is_dir():
        app.mount("/", StaticFiles(directory=settings.static_dir), name="static")

    return app


def run() -> None:
    """Run the server using uvicorn."""
    settings = get_settings()
    setup_logging(settings.log_level)

    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        log_config=None,
    )


if __name__ == "__main__":
    run()
