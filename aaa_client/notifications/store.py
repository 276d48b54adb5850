"""Bounded in-memory notification list with dedup and unread tracking."""

from __future__ import annotations

import structlog

from aaa_client.notifications.decoder import decode_envelope, extract_payload_message, looks_stale
from aaa_client.notifications.models import NotificationEnvelope, NotificationRecord

logger = structlog.get_logger()

DEFAULT_STORE_LIMIT = 100


class NotificationStore:
    """Newest-first notification list owned by a single session.

    Invariants held after every public method returns:
    - at most ``limit`` records
    - ids are unique
    - ``unread_count`` equals the number of records with ``read=False``

    Methods never call out to user code, so none can be re-entered while a
    mutation is half done.
    """

    def __init__(self, limit: int = DEFAULT_STORE_LIMIT):
        if limit < 1:
            raise ValueError("limit must be at least 1")
        self.limit = limit
        self._records: list[NotificationRecord] = []
        self._unread = 0

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, notification_id: object) -> bool:
        return any(r.id == notification_id for r in self._records)

    @property
    def records(self) -> tuple[NotificationRecord, ...]:
        """Copies of the records, newest first. Editing them does not touch the store."""
        return tuple(r.model_copy(deep=True) for r in self._records)

    @property
    def unread_count(self) -> int:
        return self._unread

    def _find(self, notification_id: str) -> NotificationRecord | None:
        for record in self._records:
            if record.id == notification_id:
                return record
        return None

    def get(self, notification_id: str) -> NotificationRecord | None:
        record = self._find(notification_id)
        return record.model_copy(deep=True) if record is not None else None

    def _recount(self) -> None:
        self._unread = sum(1 for r in self._records if not r.read)

    def add(self, record: NotificationRecord) -> bool:
        """Insert ``record`` at the front. First write wins on duplicate ids.

        Returns ``False`` when the id was already present.
        """
        if record.id in self:
            logger.debug("notification_duplicate", event_id=record.id)
            return False

        record = record.model_copy(deep=True)
        self._records.insert(0, record)
        if len(self._records) > self.limit:
            evicted = len(self._records) - self.limit
            del self._records[self.limit:]
            logger.debug("notifications_evicted", count=evicted, limit=self.limit)
        self._recount()

        logger.info(
            "notification_added",
            event_id=record.id,
            type=record.type,
            total=len(self._records),
            unread=self._unread,
        )
        return True

    def add_envelope(self, envelope: NotificationEnvelope) -> bool:
        """Decode ``envelope`` and add the resulting record."""
        return self.add(decode_envelope(envelope))

    def mark_read(self, notification_id: str) -> bool:
        return self._set_read(notification_id, True)

    def mark_unread(self, notification_id: str) -> bool:
        return self._set_read(notification_id, False)

    def _set_read(self, notification_id: str, read: bool) -> bool:
        record = self._find(notification_id)
        if record is None:
            return False
        record.read = read
        self._recount()
        return True

    def mark_all_read(self) -> None:
        for record in self._records:
            record.read = True
        self._unread = 0

    def remove(self, notification_id: str) -> bool:
        before = len(self._records)
        self._records = [r for r in self._records if r.id != notification_id]
        self._recount()
        return len(self._records) != before

    def clear(self) -> None:
        self._records = []
        self._unread = 0

    def refresh_messages(self) -> int:
        """Recompute previews that still show raw JSON or a placeholder.

        Returns the number of records whose message changed.
        """
        changed = 0
        for record in self._records:
            if record.payload is None or not looks_stale(record.message):
                continue
            message = extract_payload_message(record.payload)
            if message and message != record.message:
                record.message = message
                changed += 1
        return changed
