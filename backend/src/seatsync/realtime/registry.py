"""Identity to websocket bookkeeping for the session coordinator."""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict

from fastapi.websockets import WebSocket, WebSocketDisconnect, WebSocketState

logger = logging.getLogger(__name__)

SUPERSEDED_CLOSE_CODE = 4001
SUPERSEDED_CLOSE_REASON = "superseded"


async def safe_send_json(websocket: WebSocket, data: dict[str, Any]) -> bool:
    """Safely send JSON data through websocket, handling disconnections gracefully.

    Returns True if message was sent successfully, False otherwise.
    """
    if websocket.application_state != WebSocketState.CONNECTED:
        return False
    try:
        await websocket.send_json(data)
        return True
    except (WebSocketDisconnect, RuntimeError) as e:
        logger.debug("Failed to send websocket message: %s", e)
        return False


@dataclass(slots=True, eq=False)
class Connection:
    """One accepted websocket and the identity it registered as."""

    websocket: WebSocket
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    identity: str | None = None

    async def send(self, payload: dict[str, Any]) -> bool:
        return await safe_send_json(self.websocket, payload)

    async def close(self, code: int, reason: str) -> None:
        if self.websocket.application_state != WebSocketState.CONNECTED:
            return
        try:
            await self.websocket.close(code=code, reason=reason)
        except RuntimeError as exc:
            logger.debug("Failed to close websocket: %s", exc)


class ConnectionRegistry:
    """Map each identity to its single live connection.

    Also owns the grace timers that evict an identity whose connection went
    away; the timer callback is expected to hand the eviction to the
    coordinator rather than mutate state itself.
    """

    def __init__(self) -> None:
        self._by_identity: Dict[str, Connection] = {}
        self._evictions: Dict[str, asyncio.TimerHandle] = {}

    def register(self, identity: str, connection: Connection) -> Connection | None:
        """Bind *identity* to *connection*, returning a superseded connection."""

        previous = self._by_identity.get(identity)
        connection.identity = identity
        self._by_identity[identity] = connection
        self.cancel_eviction(identity)
        if previous is connection:
            return None
        return previous

    def unregister(self, connection: Connection) -> bool:
        """Drop *connection* if it is still the live one for its identity."""

        identity = connection.identity
        if identity is None or self._by_identity.get(identity) is not connection:
            return False
        del self._by_identity[identity]
        return True

    def lookup(self, identity: str) -> Connection | None:
        return self._by_identity.get(identity)

    def connections(self) -> list[Connection]:
        return list(self._by_identity.values())

    def __len__(self) -> int:
        return len(self._by_identity)

    def __contains__(self, identity: object) -> bool:
        return identity in self._by_identity

    # ------------------------------------------------------------------
    # Grace-period eviction
    # ------------------------------------------------------------------
    def schedule_eviction(
        self, identity: str, delay: float, callback: Callable[[str], None]
    ) -> None:
        self.cancel_eviction(identity)
        loop = asyncio.get_running_loop()
        self._evictions[identity] = loop.call_later(
            max(delay, 0.0), self._expire, identity, callback
        )

    def cancel_eviction(self, identity: str) -> bool:
        handle = self._evictions.pop(identity, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def eviction_pending(self, identity: str) -> bool:
        return identity in self._evictions

    def clear(self) -> None:
        for handle in self._evictions.values():
            handle.cancel()
        self._evictions.clear()
        self._by_identity.clear()

    def _expire(self, identity: str, callback: Callable[[str], None]) -> None:
        self._evictions.pop(identity, None)
        callback(identity)


__all__ = [
    "Connection",
    "ConnectionRegistry",
    "SUPERSEDED_CLOSE_CODE",
    "SUPERSEDED_CLOSE_REASON",
    "safe_send_json",
]
