"""Push-notification channel: connection lifecycle and envelope delivery."""

from __future__ import annotations

import enum
import functools
import json
from typing import Callable, Iterable, Protocol

import httpx
import structlog
from pydantic import ValidationError

from aaa_client.config import Settings
from aaa_client.notifications.models import SSE_EVENT_NAMES, NotificationEnvelope
from aaa_client.notifications.transport import SseMessage, SseTransport

logger = structlog.get_logger()


class ConnectionState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class Transport(Protocol):
    def start(self) -> None: ...

    async def close(self) -> None: ...


# Called with keyword callbacks on_open, on_message and on_error
TransportFactory = Callable[..., Transport]
EnvelopeCallback = Callable[[NotificationEnvelope], None]


def parse_envelope(data: str) -> NotificationEnvelope | None:
    """Decode one frame body. Returns None for anything that is not a valid envelope."""
    try:
        return NotificationEnvelope.model_validate(json.loads(data))
    except (ValueError, ValidationError) as e:
        logger.warning("notification_envelope_invalid", error=str(e), data=data[:200])
        return None


class NotificationChannel:
    """Owns at most one push connection and fans envelopes out to subscribers.

    ``connect()`` moves to CONNECTING and then to CONNECTED on the transport's
    first open. Transport errors move to ERROR without tearing anything down;
    the transport retries on its own and may go straight back to CONNECTED.
    ``disconnect()`` always ends in DISCONNECTED.
    """

    def __init__(
        self,
        transport_factory: TransportFactory,
        event_names: Iterable[str] = SSE_EVENT_NAMES,
        on_state_change: Callable[[ConnectionState], None] | None = None,
        on_error: Callable[[Exception], None] | None = None,
    ):
        self._factory = transport_factory
        self.event_names = frozenset(event_names)
        self._on_state_change = on_state_change
        self._on_error = on_error
        self._subscribers: list[EnvelopeCallback] = []
        self._transport: Transport | None = None
        # Bumped on every connect/disconnect; callbacks from older transports are dropped
        self._generation = 0
        self._state = ConnectionState.DISCONNECTED
        self._enabled = False

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        http: httpx.AsyncClient | None = None,
        **kwargs,
    ) -> NotificationChannel:
        factory = functools.partial(SseTransport.from_settings, settings=settings, http=http)
        return cls(factory, **kwargs)

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def enabled(self) -> bool:
        return self._enabled

    def subscribe(self, callback: EnvelopeCallback) -> Callable[[], None]:
        """Register ``callback`` for every decoded envelope. Returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _set_state(self, state: ConnectionState) -> None:
        if state is self._state:
            return
        previous, self._state = self._state, state
        logger.info("notification_channel_state", previous=previous.value, state=state.value)
        if self._on_state_change is not None:
            try:
                self._on_state_change(state)
            except Exception:
                logger.exception("notification_state_callback_failed")

    async def connect(self) -> None:
        """Open a new push connection, replacing any existing one."""
        if self._transport is not None:
            await self.disconnect()

        self._generation += 1
        generation = self._generation
        self._set_state(ConnectionState.CONNECTING)

        transport = self._factory(
            on_open=functools.partial(self._handle_open, generation),
            on_message=functools.partial(self._handle_message, generation),
            on_error=functools.partial(self._handle_error, generation),
        )
        self._transport = transport
        transport.start()

    async def disconnect(self) -> None:
        """Tear down the connection. A no-op when already disconnected."""
        self._generation += 1
        transport, self._transport = self._transport, None
        if transport is not None:
            await transport.close()
            logger.info("notification_channel_closed")
        self._set_state(ConnectionState.DISCONNECTED)

    async def set_enabled(self, enabled: bool) -> None:
        """Connect when enabled (login), disconnect when disabled (logout)."""
        self._enabled = enabled
        if enabled:
            if self._transport is None:
                await self.connect()
        else:
            await self.disconnect()

    async def reconnect(self) -> None:
        await self.disconnect()
        if self._enabled:
            await self.connect()

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation and self._transport is not None

    def _handle_open(self, generation: int) -> None:
        if not self._is_current(generation):
            return
        self._set_state(ConnectionState.CONNECTED)

    def _handle_error(self, generation: int, exc: Exception) -> None:
        if not self._is_current(generation):
            return
        logger.warning("notification_channel_error", error=str(exc))
        self._set_state(ConnectionState.ERROR)
        if self._on_error is not None:
            try:
                self._on_error(exc)
            except Exception:
                logger.exception("notification_error_callback_failed")

    def _handle_message(self, generation: int, message: SseMessage) -> None:
        if not self._is_current(generation):
            logger.debug("notification_stale_frame", event_type=message.event)
            return
        if message.event not in self.event_names:
            logger.debug("notification_frame_ignored", event_type=message.event)
            return

        envelope = parse_envelope(message.data)
        if envelope is None:
            return

        logger.debug("notification_received", event_type=envelope.event, event_id=envelope.event_id)
        for callback in list(self._subscribers):
            try:
                callback(envelope)
            except Exception:
                logger.exception("notification_subscriber_failed", event_id=envelope.event_id)
