"""Push channels: one long-lived text/event-stream response per subscriber.

A :class:`PushChannel` owns the ASGI ``send`` callable of an open SSE
response. It moves through exactly two states, ``OPEN`` and ``CLOSED``;
the transition happens once, on client disconnect, on a failed or timed-out
write, or when the server shuts down. Close handlers run at that moment and
are how the registry learns a subscriber is gone.

:class:`EventStreamResponse` is the ASGI response that creates a channel,
acknowledges the connection, registers it, and then keeps the stream open
until either side ends it.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import suppress
from enum import Enum
from typing import Callable, List, Optional

from starlette.responses import Response
from starlette.types import Receive, Scope, Send

from .events import KEEPALIVE_FRAME, Event, connected_event
from .registry import SubscriberRegistry

logger = logging.getLogger(__name__)

CloseHandler = Callable[["PushChannel"], None]

SSE_HEADERS = [
    (b"content-type", b"text/event-stream; charset=utf-8"),
    (b"cache-control", b"no-cache"),
    (b"connection", b"keep-alive"),
    (b"x-accel-buffering", b"no"),
]


class ChannelState(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class TransportError(Exception):
    """A write to a push channel failed or the channel is already closed."""

    def __init__(self, channel_id: str, reason: str) -> None:
        super().__init__(f"{channel_id}: {reason}")
        self.channel_id = channel_id
        self.reason = reason


class PushChannel:
    def __init__(
        self,
        send: Send,
        *,
        timeout: float = 5.0,
        channel_id: Optional[str] = None,
    ) -> None:
        self.id = channel_id or uuid.uuid4().hex[:12]
        self.close_reason: Optional[str] = None
        self._send = send
        self._timeout = timeout
        self._state = ChannelState.OPEN
        self._handlers: List[CloseHandler] = []
        self._write_lock = asyncio.Lock()
        self._closed = asyncio.Event()

    def __repr__(self) -> str:
        return f"PushChannel(id={self.id!r}, state={self._state.value})"

    @property
    def state(self) -> ChannelState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state is ChannelState.OPEN

    def on_close(self, handler: CloseHandler) -> None:
        if self._state is ChannelState.CLOSED:
            self._run_handler(handler)
            return
        self._handlers.append(handler)

    def close(self, reason: str = "closed") -> bool:
        if self._state is ChannelState.CLOSED:
            return False
        self._state = ChannelState.CLOSED
        self.close_reason = reason
        self._closed.set()
        handlers, self._handlers = self._handlers, []
        logger.info("push channel %s closed: %s", self.id, reason)
        for handler in handlers:
            self._run_handler(handler)
        return True

    async def wait_closed(self) -> None:
        await self._closed.wait()

    async def send(self, event: Event) -> Optional[TransportError]:
        """Write one event; failures come back as a value, never raised."""

        return await self._write(event.encode())

    async def ping(self) -> Optional[TransportError]:
        return await self._write(KEEPALIVE_FRAME)

    async def _write(self, frame: bytes) -> Optional[TransportError]:
        if self._state is ChannelState.CLOSED:
            return TransportError(self.id, "channel closed")
        try:
            await asyncio.wait_for(self._locked_write(frame), self._timeout)
        except asyncio.TimeoutError:
            error = TransportError(self.id, f"write timed out after {self._timeout:g}s")
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            error = TransportError(self.id, f"write failed: {exc!r}")
        else:
            return None
        self.close(error.reason)
        return error

    async def _locked_write(self, frame: bytes) -> None:
        async with self._write_lock:
            if self._state is ChannelState.CLOSED:
                raise ConnectionError("channel closed while waiting to write")
            await self._send(
                {"type": "http.response.body", "body": frame, "more_body": True}
            )

    def _run_handler(self, handler: CloseHandler) -> None:
        try:
            handler(self)
        except Exception:  # noqa: BLE001
            logger.exception("close handler failed for push channel %s", self.id)


class EventStreamResponse(Response):
    """Response that turns one request into a registered push channel."""

    media_type = "text/event-stream"

    def __init__(
        self,
        registry: SubscriberRegistry,
        *,
        send_timeout: float = 5.0,
        keepalive: float = 15.0,
    ) -> None:
        self.registry = registry
        self.send_timeout = send_timeout
        self.keepalive = keepalive
        self.channel: Optional[PushChannel] = None
        self.status_code = 200
        self.background = None
        self.raw_headers = list(SSE_HEADERS)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        await send(
            {"type": "http.response.start", "status": 200, "headers": self.raw_headers}
        )
        channel = PushChannel(send, timeout=self.send_timeout)
        self.channel = channel
        client = scope.get("client")
        logger.info(
            "push channel %s opened from %s", channel.id, client[0] if client else "unknown"
        )

        error = await channel.send(connected_event())
        if error is None:
            channel.on_close(self.registry.unregister)
            self.registry.register(channel)
            disconnected = await self._hold_open(channel, receive)
            channel.close("client disconnected" if disconnected else "stream ended")
        else:
            logger.warning("push channel %s failed acknowledgment: %s", channel.id, error.reason)

        if channel.close_reason != "client disconnected":
            # The client may still be reading; end the body so the server can finish the cycle.
            with suppress(Exception):
                await asyncio.wait_for(
                    send({"type": "http.response.body", "body": b"", "more_body": False}),
                    self.send_timeout,
                )
        if self.background is not None:
            await self.background()

    async def _hold_open(self, channel: PushChannel, receive: Receive) -> bool:
        """Wait for a client disconnect or a channel close.

        Returns True when the client went away first.
        """

        disconnect = asyncio.ensure_future(_wait_for_disconnect(receive))
        closed = asyncio.ensure_future(channel.wait_closed())
        interval = self.keepalive if self.keepalive > 0 else None
        try:
            while True:
                done, _ = await asyncio.wait(
                    {disconnect, closed},
                    timeout=interval,
                    return_when=asyncio.FIRST_COMPLETED,
                )
                if disconnect in done:
                    return True
                if closed in done:
                    return False
                await channel.ping()
        finally:
            for task in (disconnect, closed):
                if not task.done():
                    task.cancel()
            await asyncio.gather(disconnect, closed, return_exceptions=True)


async def _wait_for_disconnect(receive: Receive) -> None:
    while True:
        message = await receive()
        if message["type"] == "http.disconnect":
            return
