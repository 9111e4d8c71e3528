"""Resilient websocket channel used by seat clients.

The channel keeps one websocket open to the coordination service, reconnects
with exponential backoff when it drops, probes liveness with application
level pings, and queues outbound messages while no socket is available.
Ordinary disconnects are never raised to callers; they are reported through
status callbacks instead.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

logger = logging.getLogger(__name__)

HEARTBEAT_CLOSE_CODE = 4000
SUPERSEDED_CLOSE_CODE = 4001

REASON_CLOSED = "closed"
REASON_CONNECT_FAILED = "connect_failed"
REASON_HEARTBEAT_TIMEOUT = "heartbeat_timeout"
REASON_SUPERSEDED = "superseded"


class ChannelStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


@dataclass(slots=True)
class ChannelConfig:
    """Timing and sizing knobs for :class:`TransportChannel`."""

    initial_delay: float = 1.0
    multiplier: float = 1.5
    max_delay: float = 30.0
    heartbeat_interval: float = 13.0
    heartbeat_timeout: float = 10.0
    open_timeout: float = 10.0
    queue_limit: int = 256

    def backoff_delay(self, attempt: int) -> float:
        return min(self.initial_delay * (self.multiplier**attempt), self.max_delay)


MessageHandler = Callable[[dict[str, Any]], Awaitable[None]]
StatusHandler = Callable[[ChannelStatus, "str | None"], Awaitable[None]]
Connector = Callable[..., Awaitable[Any]]
Handshake = Callable[[], "Mapping[str, Any] | None"]


class TransportChannel:
    """Persistent, self-healing JSON channel to the coordination service."""

    def __init__(
        self,
        url: str,
        *,
        config: ChannelConfig | None = None,
        handshake: Handshake | None = None,
        connector: Connector | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.url = url
        self.config = config or ChannelConfig()
        self._handshake = handshake
        self._connector = connector or websockets.connect
        self._sleep = sleep
        self._status = ChannelStatus.DISCONNECTED
        self._message_handlers: list[MessageHandler] = []
        self._status_handlers: list[StatusHandler] = []
        self._outbox: deque[str] = deque()
        self._connection: Any = None
        self._runner: asyncio.Task[None] | None = None
        self._closing = False
        self._ack = asyncio.Event()
        self._connected = asyncio.Event()
        self._heartbeat_expired = False
        self.superseded = False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    @property
    def status(self) -> ChannelStatus:
        return self._status

    @property
    def pending(self) -> int:
        """Number of messages waiting for a connection."""

        return len(self._outbox)

    def on_message(self, handler: MessageHandler) -> MessageHandler:
        self._message_handlers.append(handler)
        return handler

    def on_status_change(self, handler: StatusHandler) -> StatusHandler:
        self._status_handlers.append(handler)
        return handler

    async def connect(self) -> None:
        """Start the connection loop; returns immediately."""

        if self._runner is not None and not self._runner.done():
            return
        self._closing = False
        self.superseded = False
        self._runner = asyncio.create_task(self._run(), name="seatsync-channel")

    async def wait_connected(self, timeout: float | None = None) -> None:
        await asyncio.wait_for(self._connected.wait(), timeout=timeout)

    async def send(self, message: Mapping[str, Any]) -> None:
        """Send *message* now, or queue it until the channel is connected."""

        payload = json.dumps(dict(message))
        connection = self._connection
        if connection is not None and self._status is ChannelStatus.CONNECTED and not self._outbox:
            try:
                await connection.send(payload)
                return
            except ConnectionClosed:
                logger.debug("Send raced with a closing socket; queueing")
        self._enqueue(payload)

    async def close(self) -> None:
        """Close the socket and stop reconnecting, cancelling any pending retry."""

        self._closing = True
        runner, self._runner = self._runner, None
        connection = self._connection
        if connection is not None:
            with contextlib.suppress(ConnectionClosed, OSError):
                await connection.close()
        if runner is not None:
            runner.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await runner
        self._connection = None
        await self._set_status(ChannelStatus.DISCONNECTED, REASON_CLOSED)

    # ------------------------------------------------------------------
    # Connection loop
    # ------------------------------------------------------------------
    async def _run(self) -> None:
        attempt = 0
        reconnecting = False
        while not self._closing:
            await self._set_status(
                ChannelStatus.RECONNECTING if reconnecting else ChannelStatus.CONNECTING, None
            )
            try:
                connection = await self._connector(
                    self.url,
                    open_timeout=self.config.open_timeout,
                    ping_interval=None,
                )
            except asyncio.CancelledError:
                raise
            except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
                delay = self.config.backoff_delay(attempt)
                attempt += 1
                reconnecting = True
                logger.warning(
                    "Connection attempt failed; retrying",
                    extra={"attempt": attempt, "delay": delay, "error": str(exc)},
                )
                await self._set_status(ChannelStatus.RECONNECTING, REASON_CONNECT_FAILED)
                await self._sleep(delay)
                continue

            attempt = 0
            reason = await self._serve(connection)
            if self._closing:
                break
            if reason == REASON_SUPERSEDED:
                logger.info("Connection superseded by another session; not reconnecting")
                self.superseded = True
                self._closing = True
                await self._set_status(ChannelStatus.DISCONNECTED, REASON_SUPERSEDED)
                break

            delay = self.config.backoff_delay(attempt)
            attempt += 1
            reconnecting = True
            logger.info("Connection lost; reconnecting", extra={"reason": reason, "delay": delay})
            await self._set_status(ChannelStatus.RECONNECTING, reason)
            await self._sleep(delay)

    async def _serve(self, connection: Any) -> str:
        self._connection = connection
        self._heartbeat_expired = False
        self._ack.clear()
        heartbeat: asyncio.Task[None] | None = None
        try:
            handshake = self._handshake() if self._handshake is not None else None
            if handshake is not None:
                await connection.send(json.dumps(dict(handshake)))
            await self._set_status(ChannelStatus.CONNECTED, None)
            await self._flush(connection)
            heartbeat = asyncio.create_task(self._heartbeat(connection), name="seatsync-heartbeat")
            await self._read(connection)
        except ConnectionClosed as exc:
            return self._close_reason(exc)
        finally:
            self._connection = None
            if heartbeat is not None:
                heartbeat.cancel()
                with contextlib.suppress(asyncio.CancelledError, ConnectionClosed, OSError):
                    await heartbeat
        return REASON_CLOSED

    async def _read(self, connection: Any) -> None:
        while True:
            raw = await connection.recv()
            self._ack.set()
            try:
                message = json.loads(raw)
            except (TypeError, json.JSONDecodeError):
                logger.warning("Ignoring undecodable frame")
                continue
            if not isinstance(message, dict):
                continue
            message_type = message.get("type")
            if message_type == "ping":
                await connection.send(json.dumps({"type": "pong"}))
                continue
            if message_type == "pong":
                continue
            for handler in list(self._message_handlers):
                try:
                    await handler(message)
                except Exception:
                    logger.exception("Message handler failed", extra={"message_type": message_type})

    async def _heartbeat(self, connection: Any) -> None:
        interval = self.config.heartbeat_interval
        if interval <= 0:
            return
        while True:
            await asyncio.sleep(interval)
            self._ack.clear()
            try:
                await connection.send(json.dumps({"type": "ping"}))
            except (ConnectionClosed, OSError):
                return
            try:
                await asyncio.wait_for(self._ack.wait(), timeout=self.config.heartbeat_timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    "Heartbeat not acknowledged; dropping connection",
                    extra={"timeout": self.config.heartbeat_timeout},
                )
                self._heartbeat_expired = True
                with contextlib.suppress(ConnectionClosed, OSError):
                    await connection.close(code=HEARTBEAT_CLOSE_CODE, reason="heartbeat timeout")
                return

    async def _flush(self, connection: Any) -> None:
        while self._outbox:
            await connection.send(self._outbox[0])
            self._outbox.popleft()

    def _enqueue(self, payload: str) -> None:
        if len(self._outbox) >= self.config.queue_limit:
            self._outbox.popleft()
            logger.warning("Outbound queue full; dropping oldest message")
        self._outbox.append(payload)

    def _close_reason(self, exc: ConnectionClosed) -> str:
        if self._heartbeat_expired:
            return REASON_HEARTBEAT_TIMEOUT
        received = exc.rcvd
        if received is not None and received.code == SUPERSEDED_CLOSE_CODE:
            return REASON_SUPERSEDED
        return REASON_CLOSED

    async def _set_status(self, status: ChannelStatus, reason: str | None) -> None:
        if status is self._status:
            return
        self._status = status
        if status is ChannelStatus.CONNECTED:
            self._connected.set()
        else:
            self._connected.clear()
        for handler in list(self._status_handlers):
            try:
                await handler(status, reason)
            except Exception:
                logger.exception("Status handler failed", extra={"status": status.value})


__all__ = [
    "ChannelConfig",
    "ChannelStatus",
    "HEARTBEAT_CLOSE_CODE",
    "REASON_CLOSED",
    "REASON_CONNECT_FAILED",
    "REASON_HEARTBEAT_TIMEOUT",
    "REASON_SUPERSEDED",
    "SUPERSEDED_CLOSE_CODE",
    "TransportChannel",
]
