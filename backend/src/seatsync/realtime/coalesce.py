"""Debounced snapshot broadcasting."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

FlushCallback = Callable[[], Awaitable[None]]
SubmitCallback = Callable[[FlushCallback], None]


class CoalescingBroadcaster:
    """Collapse bursts of state changes into one snapshot broadcast.

    ``schedule()`` arms a single timer per window. When it fires, *flush* is
    handed to *submit* (the coordinator inbox) instead of being awaited from
    the timer, so the broadcast is serialized with every other mutation and
    always reads the state as it is at that moment. A window of zero flushes
    inline.
    """

    def __init__(
        self,
        name: str,
        window_seconds: float,
        flush: FlushCallback,
        submit: SubmitCallback,
    ) -> None:
        self.name = name
        self.window_seconds = max(float(window_seconds), 0.0)
        self._flush = flush
        self._submit = submit
        self._handle: asyncio.TimerHandle | None = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    async def schedule(self) -> None:
        if self.window_seconds <= 0:
            await self._flush()
            return
        if self._handle is not None:
            return
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.window_seconds, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        logger.debug("Coalesced broadcast due", extra={"broadcast": self.name})
        self._submit(self._flush)


__all__ = ["CoalescingBroadcaster", "FlushCallback", "SubmitCallback"]
