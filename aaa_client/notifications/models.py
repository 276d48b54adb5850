"""Notification schemas for the server-push channel."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict

# Every event name the server may push. Frames with other names are ignored.
SSE_EVENT_NAMES: tuple[str, ...] = (
    # Leave
    "leave_approval",
    "leave_alert",
    "leave_cc",
    "leave_draft",
    # Electronic approval
    "eapproval_alert",
    "eapproval_cc",
    "eapproval_approval",
    # General
    "alert",
    "notification",
    # Custom render types
    "contest_detail",
    "birthday",
    # Gifts
    "gift",
    "gift_arrival",
)


class NotificationEnvelope(BaseModel):
    """One push message as sent by the server. Immutable once received."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    event: str
    user_id: str
    queue_name: str
    payload: Any = None
    payload_text: str | None = None  # set when the original payload was not JSON
    sent_at: str  # ISO-8601
    event_id: str  # server-assigned, used for dedup and ack


class NotificationRecord(BaseModel):
    """Display projection of an envelope, owned by the store."""

    id: str
    type: str
    queue_name: str
    title: str
    message: str
    payload: Any = None
    received_at: datetime
    read: bool = False
    link: str | None = None


class AckResponse(BaseModel):
    deleted: int = 0
    message: str | None = None


class AlertItem(BaseModel):
    """A persisted entry of the alert inbox."""

    id: int
    queue_name: str
    message: str
    send_time: str  # YYYY-MM-DD HH:mm:ss
    is_read: bool = False
    is_deleted: bool = False
