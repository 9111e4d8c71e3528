"""WebSocket endpoint for seat and camera state synchronization."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from functools import partial
from typing import Any, Dict, TypeVar

from fastapi import APIRouter, WebSocket, status
from fastapi.websockets import WebSocketDisconnect, WebSocketState

from app.config import get_settings
from seatsync.realtime.managers import CoordinatorNotRunning, get_coordinator
from seatsync.realtime.registry import safe_send_json

router = APIRouter(prefix="/ws", tags=["ws"])

settings = get_settings()

logger = logging.getLogger(__name__)

coordinator = get_coordinator()

T = TypeVar("T")

IDLE_CLOSE_REASON = "Idle timeout"
RESTART_CLOSE_REASON = "Service restarting"


async def receive_frame(websocket: WebSocket) -> str | bytes | None:
    """Return the payload of the next text or binary frame.

    Raises :class:`WebSocketDisconnect` when the peer went away.
    """

    message = await websocket.receive()
    if message["type"] == "websocket.disconnect":
        code = message.get("code", status.WS_1000_NORMAL_CLOSURE)
        raise WebSocketDisconnect(code, message.get("reason"))
    text = message.get("text")
    if text is not None:
        return text
    return message.get("bytes")


async def iter_keepalive_messages(
    websocket: WebSocket,
    receiver: Callable[[], Awaitable[T]],
    *,
    timeout_seconds: float | int | None,
    ping_interval_seconds: float | int | None,
    idle_limit_seconds: float | int | None = None,
    ping_payload: Dict[str, Any] | None = None,
) -> AsyncIterator[T]:
    """Yield messages from *receiver* while sending keepalive pings when idle.

    When *idle_limit_seconds* is set and the peer stays silent for that long,
    the socket is closed with a policy violation and iteration stops.
    """

    ping_payload = ping_payload or {"type": "ping"}
    timeout = float(timeout_seconds) if timeout_seconds else 0.0
    interval = float(ping_interval_seconds) if ping_interval_seconds else 0.0
    idle_limit = float(idle_limit_seconds) if idle_limit_seconds else 0.0
    last_activity = time.monotonic()
    last_ping_sent: float | None = None

    while True:
        try:
            if timeout > 0:
                message = await asyncio.wait_for(receiver(), timeout=timeout)
            else:
                message = await receiver()
        except asyncio.TimeoutError:
            if websocket.application_state != WebSocketState.CONNECTED:
                break

            now = time.monotonic()
            if idle_limit > 0 and now - last_activity >= idle_limit:
                logger.info("Closing idle websocket", extra={"idle_seconds": now - last_activity})
                await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=IDLE_CLOSE_REASON)
                break

            should_ping = False
            if interval <= 0:
                should_ping = True
            else:
                if now - last_activity >= interval and (
                    last_ping_sent is None or now - last_ping_sent >= interval
                ):
                    should_ping = True

            if should_ping:
                if not await safe_send_json(websocket, ping_payload):
                    break
                last_ping_sent = now
            continue
        except asyncio.CancelledError:  # pragma: no cover - cooperative cancellation
            raise
        except (RuntimeError, WebSocketDisconnect):
            break
        else:
            last_activity = time.monotonic()
            last_ping_sent = None
            yield message


@router.websocket("/session")
async def websocket_session(websocket: WebSocket) -> None:
    """Carry register/select/release/camera traffic for one participant."""

    await websocket.accept()
    connection = coordinator.open_connection(websocket)
    logger.debug("Websocket accepted", extra={"connection": connection.id})

    try:
        async for raw_message in iter_keepalive_messages(
            websocket,
            partial(receive_frame, websocket),
            timeout_seconds=settings.websocket_keepalive_timeout_seconds,
            ping_interval_seconds=settings.websocket_keepalive_ping_interval_seconds,
            idle_limit_seconds=settings.websocket_idle_limit_seconds,
        ):
            if not raw_message:
                continue
            await coordinator.receive(connection, raw_message)
    except WebSocketDisconnect:
        pass
    except CoordinatorNotRunning:
        logger.info(
            "Seat coordinator is not running; closing websocket",
            extra={"connection": connection.id, "identity": connection.identity},
        )
        await connection.close(status.WS_1012_SERVICE_RESTART, RESTART_CLOSE_REASON)
    finally:
        await coordinator.disconnect(connection)
        logger.debug(
            "Websocket closed",
            extra={"connection": connection.id, "identity": connection.identity},
        )
