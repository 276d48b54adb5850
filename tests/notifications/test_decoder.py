"""Tests for envelope decoding and the payload message heuristic."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from aaa_client.notifications.decoder import (
    DEFAULT_MESSAGE,
    EVENT_DISPLAY,
    GENERIC_DISPLAY,
    decode_envelope,
    extract_payload_message,
    looks_stale,
    parse_sent_at,
)


# ---------------------------------------------------------------------------
# extract_payload_message
# ---------------------------------------------------------------------------


class TestExtractPayloadMessage:
    def test_non_dict_payloads(self):
        assert extract_payload_message("plain text") == "plain text"
        assert extract_payload_message(None) == ""
        assert extract_payload_message([1, 2]) == ""

    def test_leave_cancellation(self):
        msg = extract_payload_message({"leave_type": "annual", "is_cancel": 1, "status": "APPROVED"})
        assert msg == "Cancellation request - Approved"

    def test_leave_name_and_status(self):
        msg = extract_payload_message({"name": "Kim", "leave_type": "annual", "status": "REJECTED"})
        assert msg == "Kim - Rejected"

    def test_leave_status_only(self):
        assert extract_payload_message({"status": "PENDING"}) == "Pending"

    def test_leave_unknown_status_passes_through(self):
        assert extract_payload_message({"status": "ON_HOLD"}) == "ON_HOLD"

    def test_leave_first_part(self):
        msg = extract_payload_message({"leave_type": "sick", "start_date": "2024-03-04T00:00:00Z"})
        assert msg == "Leave type: sick"

    def test_leave_ignores_empty_dates(self):
        msg = extract_payload_message({"workdays_count": 0, "start_date": "0001-01-01T00:00:00Z"})
        assert msg == "Leave notice"

    def test_approval_with_requester(self):
        msg = extract_payload_message(
            {"approval_type": "hr_leave_grant", "title": "Leave grant", "name": "Lee", "status": "APPROVED"}
        )
        assert msg == "Lee's Leave grant - Approved"

    def test_approval_defaults(self):
        assert extract_payload_message({"approval_type": "x"}) == "Document - In progress"

    def test_legacy_document(self):
        assert extract_payload_message({"doc_title": "Budget", "drafter": "Park"}) == "Park's Budget"
        assert extract_payload_message({"document_title": "Budget"}) == "Budget awaiting approval"

    def test_contest(self):
        assert extract_payload_message({"contest_title": "Hackathon"}) == "Hackathon contest has started"

    def test_birthday(self):
        assert extract_payload_message({"birthday_person": "Choi"}) == "Happy birthday, Choi!"
        assert extract_payload_message({"name": "Choi"}) == "Happy birthday, Choi!"

    def test_generic_title(self):
        assert extract_payload_message({"title": "  Weekly report  "}) == "Weekly report"
        assert extract_payload_message({"title": "Report", "requester": "Han", "name": ""}) == "Han's Report"

    def test_message_fields_truncated(self):
        long = "x" * 80
        assert extract_payload_message({"content": long}) == "x" * 50 + "..."
        assert extract_payload_message({"subject": "Hi"}) == "Hi"

    def test_count(self):
        assert extract_payload_message({"count": 3}) == "3 new notifications"
        assert extract_payload_message({"count": True}) == DEFAULT_MESSAGE

    def test_default(self):
        assert extract_payload_message({}) == DEFAULT_MESSAGE


# ---------------------------------------------------------------------------
# parse_sent_at
# ---------------------------------------------------------------------------


def test_parse_sent_at_zulu():
    assert parse_sent_at("2024-05-01T09:30:00Z") == datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc)


def test_parse_sent_at_naive_is_utc():
    assert parse_sent_at("2024-05-01T09:30:00").tzinfo == timezone.utc


def test_parse_sent_at_invalid_falls_back_to_now():
    before = datetime.now(timezone.utc)
    parsed = parse_sent_at("yesterday")
    assert before <= parsed <= datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# decode_envelope
# ---------------------------------------------------------------------------


class TestDecodeEnvelope:
    def test_typed_event_uses_table(self, envelope_factory):
        record = decode_envelope(
            envelope_factory(
                event="leave_approval",
                queue_name="leave",
                payload={"name": "Kim", "leave_type": "annual", "status": "PENDING"},
                event_id="e1",
            )
        )
        assert record.id == "e1"
        assert record.type == "leave_approval"
        assert record.title == "Leave approval request"
        assert record.link == "/leave/approval"
        assert record.message == "Kim - Pending"
        assert record.read is False
        assert record.received_at == datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc)

    def test_typed_event_falls_back_to_payload_text_then_fallback(self, envelope_factory):
        record = decode_envelope(envelope_factory(event="leave_cc", payload_text="raw text"))
        assert record.message == "raw text"

        record = decode_envelope(envelope_factory(event="leave_cc"))
        assert record.message == EVENT_DISPLAY["leave_cc"].fallback

    def test_alert_prefers_payload_text(self, envelope_factory):
        record = decode_envelope(
            envelope_factory(event="alert", payload={"title": "From payload"}, payload_text="From text")
        )
        assert record.title == GENERIC_DISPLAY.title
        assert record.message == "From text"
        assert record.link is None

    def test_unknown_event_uses_generic_display(self, envelope_factory):
        record = decode_envelope(envelope_factory(event="gift", payload={"message": "A gift for you"}))
        assert record.title == "Notification"
        assert record.message == "A gift for you"

    def test_birthday_name(self, envelope_factory):
        record = decode_envelope(
            envelope_factory(event="birthday", payload={"name": "Yoon", "title": "ignored"})
        )
        assert record.title == "Happy birthday"
        assert record.message == "Happy birthday, Yoon!"


# ---------------------------------------------------------------------------
# looks_stale
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "message",
    ['{"id": 1}', '[1, 2]', 'prefix {"a": 1}', 'x "user_id": y', GENERIC_DISPLAY.fallback],
)
def test_looks_stale(message):
    assert looks_stale(message)


def test_looks_stale_readable_text():
    assert not looks_stale("Kim - Approved")
