"""Acknowledgment of consumed push notifications, single and batched."""

from __future__ import annotations

import asyncio
import enum
from typing import Awaitable, Callable, Sequence

import httpx
import structlog

from aaa_client.config import Settings, get_settings
from aaa_client.notifications.models import AckResponse

logger = structlog.get_logger()

AckSender = Callable[[list[str]], Awaitable[AckResponse]]


class AckFailurePolicy(str, enum.Enum):
    DROP = "drop"  # the server tolerates redelivery; never hold ids client-side
    RETRY = "retry"  # re-queue failed ids until each has failed max_retries times


def build_ack_body(event_ids: Sequence[str]) -> dict:
    """Single ids use ``event_id``, batches use ``event_ids``."""
    if len(event_ids) == 1:
        return {"event_id": event_ids[0]}
    return {"event_ids": list(event_ids)}


class AckClient:
    """POSTs acknowledgments to the push service."""

    def __init__(self, settings: Settings | None = None, http: httpx.AsyncClient | None = None):
        self.settings = settings or get_settings()
        self._http = http

    async def ack_notifications(self, event_ids: str | Sequence[str]) -> AckResponse:
        """Acknowledge one or more event ids.

        Raises ``RuntimeError`` when the request fails.
        """
        ids = [event_ids] if isinstance(event_ids, str) else list(event_ids)
        if not ids:
            return AckResponse(deleted=0, message="No event IDs to acknowledge")

        headers = {"X-Session-Id": self.settings.session_id} if self.settings.session_id else {}
        url = self.settings.url(self.settings.sse_ack_path)

        try:
            if self._http is not None:
                resp = await self._http.post(url, json=build_ack_body(ids), headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self.settings.http_timeout_seconds) as client:
                    resp = await client.post(url, json=build_ack_body(ids), headers=headers)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error("ack_http_error", status=e.response.status_code, count=len(ids))
            raise RuntimeError(f"Ack failed: HTTP {e.response.status_code}") from e
        except httpx.RequestError as e:
            logger.error("ack_request_error", error=str(e), count=len(ids))
            raise RuntimeError(f"Failed to reach ack endpoint: {e}") from e

        return AckResponse.model_validate(resp.json())


class AckBatcher:
    """Coalesce acknowledgments into size- or time-triggered batches.

    A batch goes out when ``batch_size`` ids are pending, or ``flush_interval``
    seconds after the first id of the batch arrived, whichever comes first.
    The pending set is cleared before the request is sent.
    """

    def __init__(
        self,
        sender: AckSender,
        batch_size: int = 10,
        flush_interval: float = 5.0,
        failure_policy: AckFailurePolicy | str = AckFailurePolicy.DROP,
        max_retries: int = 3,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self._sender = sender
        self.batch_size = batch_size
        self.flush_interval = flush_interval
        self.failure_policy = AckFailurePolicy(failure_policy)
        self.max_retries = max_retries
        # dict keeps insertion order, so batches go out in the order ids arrived
        self._pending: dict[str, None] = {}
        self._failures: dict[str, int] = {}
        self._timer: asyncio.Task | None = None
        self._closed = False

    @classmethod
    def from_settings(cls, sender: AckSender, settings: Settings | None = None) -> AckBatcher:
        settings = settings or get_settings()
        return cls(
            sender,
            batch_size=settings.ack_batch_size,
            flush_interval=settings.ack_flush_interval_seconds,
            failure_policy=settings.ack_failure_policy,
            max_retries=settings.ack_max_retries,
        )

    @property
    def pending(self) -> list[str]:
        return list(self._pending)

    @property
    def closed(self) -> bool:
        return self._closed

    async def add(self, event_id: str) -> None:
        """Queue ``event_id``; flushes inline once the batch is full."""
        if self._closed:
            logger.warning("ack_batcher_closed", event_id=event_id)
            return

        self._pending[event_id] = None

        if len(self._pending) >= self.batch_size:
            await self.flush()
            return

        if self._timer is None:
            self._timer = asyncio.create_task(self._flush_later())

    async def _flush_later(self) -> None:
        await asyncio.sleep(self.flush_interval)
        await self.flush()

    def _cancel_timer(self) -> None:
        timer, self._timer = self._timer, None
        # The timer task may be the one running this flush
        if timer is not None and timer is not asyncio.current_task():
            timer.cancel()

    async def flush(self) -> int:
        """Send everything pending as one request. Returns the server's deleted count."""
        self._cancel_timer()

        if not self._pending:
            return 0

        batch = list(self._pending)
        self._pending.clear()

        try:
            result = await self._sender(batch)
        except Exception as e:
            logger.error("ack_flush_failed", count=len(batch), error=str(e))
            self._handle_failure(batch)
            return 0

        for event_id in batch:
            self._failures.pop(event_id, None)
        logger.info("ack_flushed", count=len(batch), deleted=result.deleted)
        return result.deleted

    def _handle_failure(self, batch: list[str]) -> None:
        if self.failure_policy is AckFailurePolicy.DROP or self._closed:
            return

        requeued = 0
        for event_id in batch:
            attempts = self._failures.get(event_id, 0) + 1
            if attempts >= self.max_retries:
                self._failures.pop(event_id, None)
                logger.warning("ack_retries_exhausted", event_id=event_id, attempts=attempts)
                continue
            self._failures[event_id] = attempts
            self._pending[event_id] = None
            requeued += 1

        if requeued and self._timer is None:
            self._timer = asyncio.create_task(self._flush_later())

    def destroy(self) -> None:
        """Cancel the timer and discard pending ids without sending them."""
        self._closed = True
        self._cancel_timer()
        self._pending.clear()
        self._failures.clear()

    def reopen(self) -> None:
        """Accept ids again after ``destroy()``. Ids discarded by ``destroy()`` stay discarded."""
        if self._closed:
            self._closed = False
            logger.info("ack_batcher_reopened")
