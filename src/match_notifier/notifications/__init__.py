"""Notification payloads and the webhook dispatcher."""

from match_notifier.notifications.payload import (
    Artifact,
    BufferArtifact,
    FileArtifact,
    NotificationPayload,
    dated_caption,
)
from match_notifier.notifications.webhook import DispatchResult, WebhookDispatcher

__all__ = [
    "Artifact",
    "BufferArtifact",
    "DispatchResult",
    "FileArtifact",
    "NotificationPayload",
    "WebhookDispatcher",
    "dated_caption",
]
