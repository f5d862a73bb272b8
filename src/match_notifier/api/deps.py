"""Shared FastAPI dependencies.

Long-lived components are created in the application lifespan and kept
on app.state; these accessors hand them to endpoints.
"""

from fastapi import Request

from match_notifier.capture import CaptureCoordinator
from match_notifier.config import Settings, get_settings
from match_notifier.notifications import WebhookDispatcher
from match_notifier.realtime import ChangeEventSubscriber


def get_app_settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or get_settings()


def get_dispatcher(request: Request) -> WebhookDispatcher:
    return request.app.state.dispatcher


def get_coordinator(request: Request) -> CaptureCoordinator:
    return request.app.state.coordinator


def get_subscriber(request: Request) -> ChangeEventSubscriber | None:
    return getattr(request.app.state, "subscriber", None)
