"""Tests for AckClient and AckBatcher."""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock

import httpx
import pytest

from aaa_client.notifications.ack import AckBatcher, AckClient, AckFailurePolicy, build_ack_body
from aaa_client.notifications.models import AckResponse


def _sender(deleted: int | None = None) -> AsyncMock:
    """AsyncMock sender that reports every id as deleted unless told otherwise."""

    async def send(ids):
        return AckResponse(deleted=len(ids) if deleted is None else deleted)

    return AsyncMock(side_effect=send)


# ---------------------------------------------------------------------------
# build_ack_body / AckClient
# ---------------------------------------------------------------------------


def test_build_ack_body_single_and_batch():
    assert build_ack_body(["a"]) == {"event_id": "a"}
    assert build_ack_body(["a", "b"]) == {"event_ids": ["a", "b"]}


class TestAckClient:
    @pytest.mark.asyncio
    async def test_posts_batch(self, settings):
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            seen["headers"] = request.headers
            return httpx.Response(200, json={"deleted": 2, "message": "ok"})

        client = AckClient(settings, http=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
        result = await client.ack_notifications(["a", "b"])

        assert result == AckResponse(deleted=2, message="ok")
        assert seen["url"] == "http://backend.test/sse/notifications/ack"
        assert seen["body"] == {"event_ids": ["a", "b"]}
        assert "x-session-id" not in seen["headers"]

    @pytest.mark.asyncio
    async def test_posts_single_with_session(self, settings):
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            seen["session"] = request.headers.get("x-session-id")
            return httpx.Response(200, json={"deleted": 1})

        settings.session_id = "sess-1"
        client = AckClient(settings, http=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
        result = await client.ack_notifications("a")

        assert result.deleted == 1
        assert seen["body"] == {"event_id": "a"}
        assert seen["session"] == "sess-1"

    @pytest.mark.asyncio
    async def test_empty_short_circuits(self, settings):
        handler = AsyncMock()
        client = AckClient(settings, http=httpx.AsyncClient(transport=httpx.MockTransport(handler)))

        result = await client.ack_notifications([])

        assert result == AckResponse(deleted=0, message="No event IDs to acknowledge")
        handler.assert_not_called()

    @pytest.mark.asyncio
    async def test_http_error_raises(self, settings):
        client = AckClient(
            settings,
            http=httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(503))),
        )
        with pytest.raises(RuntimeError, match="HTTP 503"):
            await client.ack_notifications(["a"])


# ---------------------------------------------------------------------------
# AckBatcher: size and time triggers
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_full_batch_flushes_once_without_timer():
    sender = _sender()
    batcher = AckBatcher(sender, batch_size=10, flush_interval=60)

    for i in range(10):
        await batcher.add(f"e{i}")

    sender.assert_awaited_once_with([f"e{i}" for i in range(10)])
    assert batcher.pending == []
    batcher.destroy()


@pytest.mark.asyncio
async def test_partial_batch_flushes_after_interval():
    sender = _sender()
    batcher = AckBatcher(sender, batch_size=10, flush_interval=0.05)

    for event_id in ("a", "b", "c"):
        await batcher.add(event_id)
    sender.assert_not_awaited()

    await asyncio.sleep(0.2)

    sender.assert_awaited_once_with(["a", "b", "c"])
    assert batcher.pending == []


@pytest.mark.asyncio
async def test_duplicate_ids_are_sent_once():
    sender = _sender()
    batcher = AckBatcher(sender, batch_size=10, flush_interval=60)

    await batcher.add("a")
    await batcher.add("a")
    assert await batcher.flush() == 1

    sender.assert_awaited_once_with(["a"])


@pytest.mark.asyncio
async def test_size_flush_cancels_timer():
    sender = _sender()
    batcher = AckBatcher(sender, batch_size=2, flush_interval=0.05)

    await batcher.add("a")
    await batcher.add("b")
    await asyncio.sleep(0.15)

    sender.assert_awaited_once_with(["a", "b"])


@pytest.mark.asyncio
async def test_flush_returns_deleted_count():
    batcher = AckBatcher(_sender(deleted=7), flush_interval=60)
    await batcher.add("a")
    assert await batcher.flush() == 7


@pytest.mark.asyncio
async def test_flush_with_nothing_pending():
    sender = _sender()
    batcher = AckBatcher(sender)
    assert await batcher.flush() == 0
    sender.assert_not_awaited()


# ---------------------------------------------------------------------------
# AckBatcher: failure policies
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_drop_policy_discards_failed_batch():
    sender = AsyncMock(side_effect=RuntimeError("Ack failed: HTTP 500"))
    batcher = AckBatcher(sender, flush_interval=60)

    await batcher.add("a")
    assert await batcher.flush() == 0

    assert batcher.pending == []
    assert await batcher.flush() == 0
    sender.assert_awaited_once()


@pytest.mark.asyncio
async def test_retry_policy_requeues_until_exhausted():
    sender = AsyncMock(side_effect=RuntimeError("down"))
    batcher = AckBatcher(sender, flush_interval=60, failure_policy="retry", max_retries=2)

    await batcher.add("a")
    await batcher.flush()
    assert batcher.pending == ["a"]

    await batcher.flush()
    assert batcher.pending == []
    assert sender.await_count == 2
    batcher.destroy()


@pytest.mark.asyncio
async def test_retry_policy_recovers():
    sender = AsyncMock(side_effect=[RuntimeError("down"), AckResponse(deleted=1)])
    batcher = AckBatcher(sender, flush_interval=60, failure_policy=AckFailurePolicy.RETRY)

    await batcher.add("a")
    assert await batcher.flush() == 0
    assert await batcher.flush() == 1
    assert batcher.pending == []
    batcher.destroy()


@pytest.mark.asyncio
async def test_retry_policy_rearms_timer():
    sender = AsyncMock(side_effect=[RuntimeError("down"), AckResponse(deleted=1)])
    batcher = AckBatcher(sender, flush_interval=0.05, failure_policy="retry")

    await batcher.add("a")
    await asyncio.sleep(0.25)

    assert sender.await_count == 2
    assert batcher.pending == []


# ---------------------------------------------------------------------------
# AckBatcher: teardown
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_destroy_discards_without_sending():
    sender = _sender()
    batcher = AckBatcher(sender, flush_interval=0.05)

    await batcher.add("a")
    batcher.destroy()
    await asyncio.sleep(0.15)

    sender.assert_not_awaited()
    assert batcher.pending == []


@pytest.mark.asyncio
async def test_add_after_destroy_is_ignored():
    sender = _sender()
    batcher = AckBatcher(sender, batch_size=1)
    batcher.destroy()

    await batcher.add("a")

    sender.assert_not_awaited()
    assert batcher.pending == []


@pytest.mark.asyncio
async def test_reopen_accepts_new_ids_only():
    sender = _sender()
    batcher = AckBatcher(sender, batch_size=2)
    await batcher.add("old")
    batcher.destroy()
    assert batcher.closed

    batcher.reopen()
    await batcher.add("a")
    await batcher.add("b")

    assert not batcher.closed
    sender.assert_awaited_once_with(["a", "b"])


def test_batch_size_must_be_positive():
    with pytest.raises(ValueError):
        AckBatcher(_sender(), batch_size=0)


def test_from_settings(settings):
    settings.ack_batch_size = 4
    settings.ack_failure_policy = "retry"
    batcher = AckBatcher.from_settings(_sender(), settings)

    assert batcher.batch_size == 4
    assert batcher.flush_interval == settings.ack_flush_interval_seconds
    assert batcher.failure_policy is AckFailurePolicy.RETRY
