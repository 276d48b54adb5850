"""Per-session notification service: channel, store and ack batching together."""

from __future__ import annotations

from typing import Callable

import httpx
import structlog

from aaa_client.config import Settings, get_settings
from aaa_client.notifications.ack import AckBatcher, AckClient
from aaa_client.notifications.channel import ConnectionState, NotificationChannel
from aaa_client.notifications.models import NotificationEnvelope, NotificationRecord
from aaa_client.notifications.store import NotificationStore

logger = structlog.get_logger()


class NotificationService:
    """Explicitly constructed once per signed-in session.

    Every envelope the channel delivers lands in the store. Opening, deleting
    and clearing notifications queue acknowledgments on the batcher.
    """

    def __init__(
        self,
        channel: NotificationChannel,
        batcher: AckBatcher,
        store: NotificationStore | None = None,
    ):
        self.channel = channel
        self.batcher = batcher
        self.store = store if store is not None else NotificationStore()
        self._unsubscribe: Callable[[], None] | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        http: httpx.AsyncClient | None = None,
        on_state_change: Callable[[ConnectionState], None] | None = None,
    ) -> NotificationService:
        settings = settings or get_settings()
        ack_client = AckClient(settings, http=http)
        return cls(
            channel=NotificationChannel.from_settings(
                settings, http=http, on_state_change=on_state_change
            ),
            batcher=AckBatcher.from_settings(ack_client.ack_notifications, settings),
            store=NotificationStore(settings.notification_store_limit),
        )

    @property
    def connection_state(self) -> ConnectionState:
        return self.channel.state

    @property
    def unread_count(self) -> int:
        return self.store.unread_count

    def _on_envelope(self, envelope: NotificationEnvelope) -> None:
        self.store.add_envelope(envelope)

    async def start(self) -> None:
        self.batcher.reopen()
        if self._unsubscribe is None:
            self._unsubscribe = self.channel.subscribe(self._on_envelope)
        await self.channel.set_enabled(True)
        logger.info("notification_service_started")

    async def stop(self) -> None:
        """Disable the channel and discard unsent acks."""
        await self.channel.set_enabled(False)
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.batcher.destroy()
        logger.info("notification_service_stopped")

    async def open(self, notification_id: str) -> NotificationRecord | None:
        """Mark a notification read and acknowledge it."""
        if not self.store.mark_read(notification_id):
            return None
        await self.batcher.add(notification_id)
        return self.store.get(notification_id)

    async def delete(self, notification_id: str) -> bool:
        if notification_id not in self.store:
            return False
        await self.batcher.add(notification_id)
        return self.store.remove(notification_id)

    async def clear_all(self) -> int:
        """Acknowledge and drop every notification. Returns how many were cleared."""
        ids = [record.id for record in self.store.records]
        for notification_id in ids:
            await self.batcher.add(notification_id)
        self.store.clear()
        return len(ids)
