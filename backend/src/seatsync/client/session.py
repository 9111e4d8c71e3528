"""Composition of identity, transport channel, reconciliation and media."""

from __future__ import annotations

import logging

from ..protocol import Register
from .channel import ChannelConfig, Connector, TransportChannel
from .identity import IdentityStore
from .media import MediaPlane
from .reconcile import ReconciliationEngine, SeatingView

logger = logging.getLogger(__name__)


class SeatClient:
    """One participant's connection to a seat session.

    Every (re)connect registers the stored identity before anything queued
    is flushed; the engine then reconciles the snapshots that follow.
    """

    def __init__(
        self,
        url: str,
        identity_store: IdentityStore,
        *,
        media: MediaPlane | None = None,
        config: ChannelConfig | None = None,
        auto_select: bool = True,
        slot_count: int = 12,
        host_slot: int = 12,
        connector: Connector | None = None,
    ) -> None:
        self.identity_store = identity_store
        self.identity = identity_store.load_or_create()
        self.channel = TransportChannel(
            url,
            config=config,
            handshake=self._register_payload,
            connector=connector,
        )
        self.engine = ReconciliationEngine(
            self.identity,
            self.channel.send,
            media=media,
            slot_count=slot_count,
            host_slot=host_slot,
            auto_select=auto_select,
            last_slot=identity_store.last_slot,
            on_slot_change=identity_store.remember_slot,
        )
        self.channel.on_status_change(self.engine.handle_status)
        self.channel.on_message(self.engine.handle_message)

    def _register_payload(self) -> dict[str, str]:
        return Register(user_id=self.identity).dump()

    @property
    def superseded(self) -> bool:
        return self.channel.superseded

    def view(self) -> SeatingView:
        return self.engine.view()

    async def start(self) -> None:
        logger.info("Joining session", extra={"identity": self.identity, "url": self.channel.url})
        await self.channel.connect()

    async def stop(self) -> None:
        await self.engine.aclose()
        await self.channel.close()

    async def select_slot(self, slot_number: int | None = None) -> None:
        if slot_number is None:
            await self.engine.request_auto_slot()
        else:
            await self.engine.request_slot(slot_number)

    async def move_participant(self, identity: str, slot_number: int) -> None:
        await self.engine.request_move(identity, slot_number)

    async def release_slot(self) -> None:
        await self.engine.request_release()

    async def set_camera(self, enabled: bool) -> None:
        await self.engine.request_camera(enabled)

    async def refresh_player_states(self) -> None:
        await self.engine.request_player_states()

    # Host-only requests; the server answers anyone else with operation_failed.
    async def kill_player(self, identity: str) -> None:
        await self.engine.request_kill(identity)

    async def revive_player(self, identity: str) -> None:
        await self.engine.request_revive(identity)

    async def reset_player_states(self) -> None:
        await self.engine.request_reset_players()

    async def shuffle_seats(self) -> None:
        await self.engine.request_shuffle()

    async def rename_participant(self, identity: str, name: str) -> None:
        await self.engine.request_rename(identity, name)


__all__ = ["SeatClient"]
