"""Shared test fixtures for the client test suite.

Provides settings, chunk-stream helpers, envelope factories and a scripted
push transport so tests run without a backend.
"""

from __future__ import annotations

from typing import AsyncIterator, Iterable

import pytest

from aaa_client.config import Settings
from aaa_client.notifications.models import NotificationEnvelope
from aaa_client.notifications.transport import SseMessage


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture
def settings():
    """Settings isolated from the environment and any local .env file."""
    return Settings(
        _env_file=None,
        api_base_url="http://backend.test",
        session_id="",
        ack_batch_size=10,
        ack_flush_interval_seconds=0.05,
    )


# ---------------------------------------------------------------------------
# Streams
# ---------------------------------------------------------------------------


async def chunk_stream(chunks: Iterable[bytes | str]) -> AsyncIterator[bytes | str]:
    """Yield ``chunks`` one at a time like a network reader."""
    for chunk in chunks:
        yield chunk


@pytest.fixture
def make_stream():
    return chunk_stream


# ---------------------------------------------------------------------------
# Envelopes
# ---------------------------------------------------------------------------


def make_envelope(**kwargs) -> NotificationEnvelope:
    """Build a NotificationEnvelope with sensible defaults."""
    defaults = dict(
        event="alert",
        user_id="user@example.com",
        queue_name="alert",
        payload=None,
        payload_text=None,
        sent_at="2024-05-01T09:30:00Z",
        event_id="evt-1",
    )
    defaults.update(kwargs)
    return NotificationEnvelope(**defaults)


@pytest.fixture
def envelope_factory():
    return make_envelope


# ---------------------------------------------------------------------------
# Push transport double
# ---------------------------------------------------------------------------


class FakeTransport:
    """Scripted stand-in for SseTransport.

    Tests drive the callbacks directly with ``open()``, ``emit()`` and
    ``fail()``.
    """

    def __init__(self, *, on_open, on_message, on_error):
        self.on_open = on_open
        self.on_message = on_message
        self.on_error = on_error
        self.started = False
        self.closed = False

    def start(self) -> None:
        self.started = True

    async def close(self) -> None:
        self.closed = True

    def open(self) -> None:
        self.on_open()

    def emit(self, event: str, data: str, id: str | None = None) -> None:
        self.on_message(SseMessage(event=event, data=data, id=id))

    def fail(self, exc: Exception | None = None) -> None:
        self.on_error(exc or ConnectionError("stream dropped"))


class FakeTransportFactory:
    """Records every transport the channel creates."""

    def __init__(self):
        self.created: list[FakeTransport] = []

    def __call__(self, **callbacks) -> FakeTransport:
        transport = FakeTransport(**callbacks)
        self.created.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.created[-1]


@pytest.fixture
def transport_factory():
    return FakeTransportFactory()
