"""Change-stream subscriber that triggers a capture for every watched row change.

Listens on a Supabase realtime channel for postgres_changes on one
schema/table and hands each matching event to the capture coordinator
without waiting for the job. Reconnection is left to the realtime client;
overlapping triggers after a reconnect are absorbed by the coordinator.
"""

from dataclasses import dataclass, field
from typing import Any

import structlog

from match_notifier.capture import CaptureCoordinator
from match_notifier.errors import SubscriptionError
from match_notifier.logging import log_change_event

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ChangeEvent:
    """A row change pushed by the data store."""

    type: str
    schema: str | None
    table: str | None
    record: dict[str, Any] = field(default_factory=dict)
    commit_timestamp: str | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "ChangeEvent":
        """Normalize a realtime callback payload.

        Accepts both the wire shape (``{"data": {"type": ..., "record": ...}}``)
        and the flattened shape (``{"eventType": ..., "new": ...}``).
        """
        data = payload.get("data", payload) if isinstance(payload, dict) else {}
        event_type = data.get("type") or data.get("eventType") or data.get("event") or ""
        record = data.get("record") or data.get("new") or {}
        return cls(
            type=str(event_type).upper(),
            schema=data.get("schema"),
            table=data.get("table"),
            record=dict(record),
            commit_timestamp=data.get("commit_timestamp"),
        )

    def matches(self, schema: str, table: str, event: str) -> bool:
        """Check the event against the watched schema, table and event type.

        Fields the stream left out are not held against the event.
        """
        if event != "*" and self.type != event:
            return False
        if self.schema is not None and self.schema != schema:
            return False
        if self.table is not None and self.table != table:
            return False
        return True


class ChangeEventSubscriber:
    """Owns the single long-lived change-stream subscription.

    Example:
        subscriber = ChangeEventSubscriber(client, coordinator, table="test")
        await subscriber.start()
        ...
        await subscriber.stop()
    """

    def __init__(
        self,
        client: Any,
        coordinator: CaptureCoordinator,
        schema: str = "public",
        table: str = "test",
        event: str = "INSERT",
        channel_name: str = "schema-db-changes",
    ) -> None:
        """Initialize the subscriber.

        Args:
            client: Supabase async client (anything exposing channel/remove_channel)
            coordinator: Coordinator to trigger on each matching event
            schema: Schema to watch
            table: Table to watch
            event: INSERT, UPDATE, DELETE or * for all
            channel_name: Realtime channel topic
        """
        self._client = client
        self._coordinator = coordinator
        self.schema = schema
        self.table = table
        self.event = event.upper()
        self.channel_name = channel_name

        self._channel: Any = None
        self._status: str = "stopped"
        self._events_received = 0

    @property
    def is_subscribed(self) -> bool:
        return self._channel is not None

    @property
    def status(self) -> str:
        return self._status

    async def start(self) -> None:
        """Subscribe to the change stream. Calling it twice is a no-op.

        Raises:
            SubscriptionError: If the channel cannot be subscribed
        """
        if self._channel is not None:
            return

        channel = self._client.channel(self.channel_name)
        channel.on_postgres_changes(
            self.event,
            schema=self.schema,
            table=self.table,
            callback=self._handle_payload,
        )
        try:
            await channel.subscribe(self._handle_status)
        except Exception as e:
            self._status = "error"
            raise SubscriptionError(
                f"Could not subscribe to {self.schema}.{self.table}: {e}"
            ) from e

        self._channel = channel
        logger.info(
            "subscription_started",
            channel=self.channel_name,
            schema=self.schema,
            table=self.table,
            watch_event=self.event,
        )

    async def stop(self) -> None:
        """Drop the subscription. Never raises."""
        channel, self._channel = self._channel, None
        if channel is None:
            return
        try:
            await self._client.remove_channel(channel)
        except Exception as e:
            logger.warning("subscription_stop_failed", error=str(e))
        self._status = "stopped"
        logger.info("subscription_stopped", events_received=self._events_received)

    def _handle_status(self, status: Any, err: Exception | None = None) -> None:
        self._status = str(getattr(status, "value", status)).lower()
        if err is not None:
            logger.error("subscription_status", status=self._status, error=str(err))
        else:
            logger.info("subscription_status", status=self._status)

    def _handle_payload(self, payload: dict[str, Any]) -> None:
        """Realtime callback; runs on the event loop and must not block."""
        event = ChangeEvent.from_payload(payload)
        self._events_received += 1
        log_change_event(logger, event.type, event.schema, event.table, payload)

        if not event.matches(self.schema, self.table, self.event):
            logger.debug("change_event_ignored", event_type=event.type, table=event.table)
            return

        try:
            self._coordinator.trigger(reason=f"{event.type.lower()}:{event.table or self.table}")
        except Exception:
            logger.exception("trigger_failed", event_type=event.type, table=event.table)

    def get_status(self) -> dict[str, Any]:
        return {
            "subscribed": self.is_subscribed,
            "status": self._status,
            "channel": self.channel_name,
            "target": f"{self.schema}.{self.table}",
            "event": self.event,
            "events_received": self._events_received,
        }
