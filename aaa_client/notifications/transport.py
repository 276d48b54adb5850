"""Server-Sent Events transport with reconnect.

Opens a long-lived streaming GET, parses ``text/event-stream`` frames and
reports them through callbacks. Dropped connections are re-established with
exponential backoff and full jitter; authentication and not-found responses
are permanent and end the transport.
"""

from __future__ import annotations

import asyncio
import random
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Callable

import httpx
import structlog

from aaa_client.chat.lines import ChunkLineAssembler
from aaa_client.config import Settings, get_settings

logger = structlog.get_logger()

# Responses that will not improve on retry
PERMANENT_STATUS_CODES = frozenset({401, 403, 404})


class PermanentConnectError(Exception):
    """Raised when the server refuses the stream in a way retries cannot fix."""


@dataclass
class SseMessage:
    event: str
    data: str
    id: str | None = None


class SseFrameParser:
    """Line-at-a-time ``text/event-stream`` parser.

    ``last_event_id`` and ``retry_ms`` survive across connections so the
    transport can resume and honour the server's reconnect hint.
    """

    def __init__(self) -> None:
        self.last_event_id: str | None = None
        self.retry_ms: int | None = None
        self._reset()

    def _reset(self) -> None:
        self._event: str | None = None
        self._data: list[str] = []
        self._id: str | None = None

    def feed_line(self, line: str) -> SseMessage | None:
        """Consume one line; return a message when a blank line completes one."""
        if line.endswith("\r"):
            line = line[:-1]

        if line == "":
            if not self._data:
                self._reset()
                return None
            if self._id is not None:
                self.last_event_id = self._id
            message = SseMessage(
                event=self._event or "message",
                data="\n".join(self._data),
                id=self._id if self._id is not None else self.last_event_id,
            )
            self._reset()
            return message

        if line.startswith(":"):
            return None

        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]

        if name == "event":
            self._event = value
        elif name == "data":
            self._data.append(value)
        elif name == "id":
            if "\0" not in value:
                self._id = value
        elif name == "retry":
            if value.isdigit():
                self.retry_ms = int(value)
        return None


def backoff_delay(attempt: int, base: float, cap: float) -> float:
    """Full-jitter exponential backoff for the ``attempt``-th consecutive failure."""
    ceiling = min(cap, base * (2 ** max(attempt - 1, 0)))
    return random.uniform(0, ceiling)


class SseTransport:
    """One auto-reconnecting event stream, driven as a background task."""

    def __init__(
        self,
        url: str,
        *,
        on_open: Callable[[], None],
        on_message: Callable[[SseMessage], None],
        on_error: Callable[[Exception], None],
        http: httpx.AsyncClient | None = None,
        params: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
        reconnect_base: float = 1.0,
        reconnect_max: float = 30.0,
        max_attempts: int = 10,
    ):
        self.url = url
        self._on_open = on_open
        self._on_message = on_message
        self._on_error = on_error
        self._http = http
        self.params = params or {}
        self.headers = headers or {}
        self.reconnect_base = reconnect_base
        self.reconnect_max = reconnect_max
        self.max_attempts = max_attempts
        self.parser = SseFrameParser()
        self._task: asyncio.Task | None = None
        self._opened = False

    @classmethod
    def from_settings(
        cls,
        *,
        on_open: Callable[[], None],
        on_message: Callable[[SseMessage], None],
        on_error: Callable[[Exception], None],
        settings: Settings | None = None,
        http: httpx.AsyncClient | None = None,
    ) -> SseTransport:
        settings = settings or get_settings()
        params = {"session_id": settings.session_id} if settings.session_id else {}
        return cls(
            settings.url(settings.sse_notifications_path),
            on_open=on_open,
            on_message=on_message,
            on_error=on_error,
            http=http,
            params=params,
            reconnect_base=settings.sse_reconnect_base_seconds,
            reconnect_max=settings.sse_reconnect_max_seconds,
            max_attempts=settings.sse_max_reconnect_attempts,
        )

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())

    async def close(self) -> None:
        """Stop the stream. Safe to call repeatedly."""
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http is not None:
            yield self._http
            return
        # No read timeout: the stream is idle between notifications
        async with httpx.AsyncClient(timeout=httpx.Timeout(10.0, read=None)) as client:
            yield client

    async def _run(self) -> None:
        failures = 0
        while True:
            self._opened = False
            try:
                await self._stream_once()
                error: Exception = ConnectionError("event stream closed by server")
            except PermanentConnectError as e:
                logger.error("sse_connect_refused", url=self.url, error=str(e))
                self._on_error(e)
                return
            except Exception as e:
                error = e

            # A connection that opened resets the consecutive-failure count
            failures = 1 if self._opened else failures + 1
            self._on_error(error)

            # The attempt limit only applies to connections that never opened
            if self.max_attempts and not self._opened and failures >= self.max_attempts:
                logger.error("sse_reconnect_exhausted", url=self.url, attempts=failures)
                return

            base = self.parser.retry_ms / 1000 if self.parser.retry_ms else self.reconnect_base
            delay = backoff_delay(failures, base, self.reconnect_max)
            logger.warning(
                "sse_reconnect_scheduled",
                attempt=failures,
                delay_seconds=round(delay, 3),
                error=str(error),
            )
            await asyncio.sleep(delay)

    async def _stream_once(self) -> None:
        """Hold one connection until it ends."""
        headers = {"Accept": "text/event-stream", "Cache-Control": "no-cache", **self.headers}
        if self.parser.last_event_id:
            headers["Last-Event-ID"] = self.parser.last_event_id

        async with self._client() as client:
            async with client.stream("GET", self.url, params=self.params, headers=headers) as resp:
                if resp.status_code in PERMANENT_STATUS_CODES:
                    raise PermanentConnectError(f"HTTP {resp.status_code}")
                resp.raise_for_status()

                logger.info("sse_stream_opened", url=self.url)
                self._opened = True
                self._on_open()

                assembler = ChunkLineAssembler()
                async for chunk in resp.aiter_bytes():
                    for line in assembler.feed(chunk):
                        message = self.parser.feed_line(line)
                        if message is not None:
                            self._on_message(message)
