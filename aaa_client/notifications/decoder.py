"""Envelope -> display record mapping."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, NamedTuple

import structlog

from aaa_client.notifications.models import NotificationEnvelope, NotificationRecord

logger = structlog.get_logger()


class EventDisplay(NamedTuple):
    title: str
    fallback: str
    link: str | None = None


EVENT_DISPLAY: dict[str, EventDisplay] = {
    "leave_approval": EventDisplay("Leave approval request", "A new leave request is awaiting approval", "/leave/approval"),
    "leave_alert": EventDisplay("Leave notice", "There is an update on your leave", "/leave"),
    "leave_cc": EventDisplay("Leave CC", "You were copied on a leave request", "/leave"),
    "leave_draft": EventDisplay("Leave draft saved", "You have a saved leave request draft", "/leave"),
    "eapproval_approval": EventDisplay("Approval request", "A new document is awaiting your approval", "/approval"),
    "eapproval_alert": EventDisplay("Approval notice", "There is an update on an approval document", "/approval"),
    "eapproval_cc": EventDisplay("Approval CC", "You were copied on an approval document", "/approval"),
    "contest_detail": EventDisplay("Contest", "A new contest has been announced", "/contest"),
    "birthday": EventDisplay("Happy birthday", "Today is a special day!"),
}
GENERIC_DISPLAY = EventDisplay("Notification", "You have a new notification")

STATUS_LABELS: dict[str, str] = {
    "APPROVED": "Approved",
    "REJECTED": "Rejected",
    "PENDING": "Pending",
}

MESSAGE_FIELDS: tuple[str, ...] = ("message", "content", "body", "text", "description", "subject")
PREVIEW_LENGTH = 50
DEFAULT_MESSAGE = "New notification"


def _truncate(text: str, limit: int = PREVIEW_LENGTH) -> str:
    return text[:limit] + "..." if len(text) > limit else text


def _format_date(value: Any) -> str | None:
    """Render an ISO timestamp as YYYY-MM-DD, or None if absent or unusable."""
    if not value or not isinstance(value, str) or value.startswith("0001-01-01"):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date().isoformat()
    except ValueError:
        return None


def _leave_message(p: dict[str, Any]) -> str:
    parts: dict[str, str] = {}
    if p.get("is_cancel") == 1:
        parts["cancel"] = "Cancellation request"
    if p.get("name"):
        parts["name"] = str(p["name"])
    if p.get("department"):
        parts["department"] = f"Department: {p['department']}"
    if p.get("leave_type"):
        parts["leave_type"] = f"Leave type: {p['leave_type']}"
    start = _format_date(p.get("start_date"))
    if start:
        parts["start"] = f"From: {start}"
    end = _format_date(p.get("end_date"))
    if end:
        parts["end"] = f"To: {end}"
    workdays = p.get("workdays_count")
    if isinstance(workdays, (int, float)) and workdays > 0:
        parts["workdays"] = f"Days: {workdays}"
    if p.get("reason"):
        parts["reason"] = f"Reason: {p['reason']}"
    if p.get("status"):
        parts["status"] = STATUS_LABELS.get(str(p["status"]), str(p["status"]))
    if p.get("reject_message"):
        parts["reject"] = f"Rejection reason: {p['reject_message']}"

    if not parts:
        return "Leave notice"

    # One-line preview: the most telling combination available
    if "cancel" in parts and "status" in parts:
        return f"{parts['cancel']} - {parts['status']}"
    if "name" in parts and "status" in parts:
        return f"{parts['name']} - {parts['status']}"
    if "status" in parts:
        return parts["status"]
    return next(iter(parts.values()))


def _approval_message(p: dict[str, Any]) -> str:
    doc_title = p.get("title") or p.get("doc_title") or p.get("document_title") or "Document"
    requester = p.get("name") or p.get("drafter") or p.get("drafter_name") or ""
    status = STATUS_LABELS.get(str(p.get("status")), "In progress")
    if requester:
        return f"{requester}'s {doc_title} - {status}"
    return f"{doc_title} - {status}"


def extract_payload_message(payload: Any) -> str:
    """Build a short, human-readable preview from a notification payload.

    Looks for well-known fields of each event family in turn and falls back
    to a generic message when nothing recognizable is present.
    """
    if not isinstance(payload, dict):
        return payload if isinstance(payload, str) else ""

    p = payload

    if "leave_type" in p or "workdays_count" in p or ("status" in p and "approval_type" not in p):
        return _leave_message(p)

    if "approval_type" in p or ("title" in p and "status" in p and "leave_type" not in p):
        return _approval_message(p)

    if "doc_title" in p or "document_title" in p:
        doc_title = p.get("doc_title") or p.get("document_title") or "Document"
        drafter = p.get("drafter") or p.get("drafter_name") or p.get("name") or ""
        return f"{drafter}'s {doc_title}" if drafter else f"{doc_title} awaiting approval"

    if "contest_title" in p or "contest_name" in p:
        contest = p.get("contest_title") or p.get("contest_name") or "New"
        return f"{contest} contest has started"

    if "birthday_person" in p or (p.get("name") and not p.get("title") and not p.get("leave_type")):
        return f"Happy birthday, {p.get('birthday_person') or p.get('name')}!"

    title = p.get("title")
    if isinstance(title, str) and title.strip():
        name = p.get("name") or p.get("requester") or ""
        if name:
            return f"{name}'s {title.strip()}"
        return _truncate(title.strip())

    for field in MESSAGE_FIELDS:
        value = p.get(field)
        if isinstance(value, str) and value.strip():
            return _truncate(value.strip())

    name = p.get("name")
    if isinstance(name, str) and name.strip():
        return f"Notification for {name}"

    count = p.get("count")
    if isinstance(count, (int, float)) and not isinstance(count, bool) and count > 0:
        return f"{count} new notifications"

    return DEFAULT_MESSAGE


def parse_sent_at(value: str) -> datetime:
    """Parse the envelope timestamp; unusable values fall back to now (UTC)."""
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        logger.warning("notification_sent_at_invalid", sent_at=value)
        return datetime.now(timezone.utc)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def message_for(envelope: NotificationEnvelope) -> str:
    """Pick the display message for ``envelope`` by event family."""
    display = EVENT_DISPLAY.get(envelope.event, GENERIC_DISPLAY)
    payload = envelope.payload

    if envelope.event == "birthday" and isinstance(payload, dict) and payload.get("name"):
        return f"Happy birthday, {payload['name']}!"

    if envelope.event in EVENT_DISPLAY:
        return extract_payload_message(payload) or envelope.payload_text or display.fallback

    # alert, notification and unknown events prefer the raw text
    return envelope.payload_text or extract_payload_message(payload) or display.fallback


def decode_envelope(envelope: NotificationEnvelope) -> NotificationRecord:
    """Project an envelope into the record the store keeps."""
    display = EVENT_DISPLAY.get(envelope.event, GENERIC_DISPLAY)
    return NotificationRecord(
        id=envelope.event_id,
        type=envelope.event,
        queue_name=envelope.queue_name,
        title=display.title,
        message=message_for(envelope),
        payload=envelope.payload,
        received_at=parse_sent_at(envelope.sent_at),
        read=False,
        link=display.link,
    )


def looks_stale(message: str) -> bool:
    """True for messages that are raw JSON or one of the fallback placeholders."""
    stripped = message.strip()
    if stripped.startswith(("{", "[")) or '{"' in message:
        return True
    if any(marker in message for marker in ('"id":', '"user_id":', '"name":')):
        return True
    fallbacks = {d.fallback for d in EVENT_DISPLAY.values()} | {GENERIC_DISPLAY.fallback}
    return message in fallbacks
