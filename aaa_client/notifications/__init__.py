"""Server-push notifications: transport, channel, decoding, storage and acknowledgment."""

from aaa_client.notifications.ack import AckBatcher, AckClient, AckFailurePolicy
from aaa_client.notifications.channel import ConnectionState, NotificationChannel
from aaa_client.notifications.decoder import decode_envelope, extract_payload_message
from aaa_client.notifications.inbox import InboxClient
from aaa_client.notifications.models import (
    SSE_EVENT_NAMES,
    AckResponse,
    AlertItem,
    NotificationEnvelope,
    NotificationRecord,
)
from aaa_client.notifications.service import NotificationService
from aaa_client.notifications.store import NotificationStore
from aaa_client.notifications.transport import SseMessage, SseTransport

__all__ = [
    "SSE_EVENT_NAMES",
    "AckBatcher",
    "AckClient",
    "AckFailurePolicy",
    "AckResponse",
    "AlertItem",
    "ConnectionState",
    "InboxClient",
    "NotificationChannel",
    "NotificationEnvelope",
    "NotificationRecord",
    "NotificationService",
    "NotificationStore",
    "SseMessage",
    "SseTransport",
    "decode_envelope",
    "extract_payload_message",
]
