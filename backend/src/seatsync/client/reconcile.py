"""Client-side reconciliation of seating, camera and track state.

The engine is the only place where the three sources of truth meet: the
server's seating and camera snapshots, this participant's optimistic camera
toggle, and the media plane's knowledge of which tracks exist. The result is
an immutable :class:`SeatingView` the presentation layer renders as-is.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping

from ..protocol import (
    CamelModel,
    CameraStateChange,
    CameraStatesUpdate,
    DisplayNameUpdate,
    ErrorNotice,
    GetPlayerStates,
    KillPlayer,
    OperationFailed,
    PlayerStatesUpdate,
    ProtocolError,
    ReleaseSlot,
    RenameSuccess,
    RenameUser,
    ResetPlayerStates,
    RevivePlayer,
    SelectSlot,
    ShuffleUsers,
    SlotBusyNotice,
    SlotSelectionResult,
    SlotsUpdate,
    parse_server_message,
)
from .channel import ChannelStatus
from .media import VIDEO_KIND, MediaPlane, TrackHandle

logger = logging.getLogger(__name__)

SendCallback = Callable[[Mapping[str, Any]], Awaitable[None]]
ViewListener = Callable[["SeatingView"], None]
SlotListener = Callable[["int | None"], None]


@dataclass(frozen=True, slots=True)
class Tile:
    """What one seat should display."""

    slot_number: int
    identity: str | None = None
    is_self: bool = False
    is_host_slot: bool = False
    camera_enabled: bool = False
    video_available: bool = False
    eliminated: bool = False
    display_name: str | None = None

    @property
    def occupied(self) -> bool:
        return self.identity is not None

    @property
    def show_video(self) -> bool:
        return self.camera_enabled and self.video_available

    @property
    def label(self) -> str | None:
        return self.display_name or self.identity


@dataclass(frozen=True, slots=True)
class SeatingView:
    tiles: tuple[Tile, ...]
    own_slot: int | None
    host_identity: str | None

    def tile(self, slot_number: int) -> Tile:
        return self.tiles[slot_number - 1]

    def seating(self) -> list[dict[str, str | int]]:
        return [
            {"userId": tile.identity, "slotNumber": tile.slot_number}
            for tile in self.tiles
            if tile.identity is not None
        ]


class ReconciliationEngine:
    def __init__(
        self,
        identity: str,
        send: SendCallback,
        *,
        media: MediaPlane | None = None,
        slot_count: int = 12,
        host_slot: int = 12,
        auto_select: bool = True,
        last_slot: int | None = None,
        on_slot_change: SlotListener | None = None,
    ) -> None:
        self.identity = identity
        self.media = media
        self.slot_count = slot_count
        self.host_slot = host_slot
        self.auto_select = auto_select
        self._send_callback = send
        self._on_slot_change = on_slot_change
        self._slots: dict[int, str] = {}
        self._server_cameras: dict[str, bool] = {}
        self._pending_camera: bool | None = None
        self._killed: dict[str, bool] = {}
        self._display_names: dict[str, str] = {}
        self._tracks: dict[str, set[str]] = {}
        self._seeded: set[str] = set()
        self._last_slot = last_slot
        self._released = False
        self._awaiting_snapshot = False
        self._auto_attempt: int | None = None
        self._listeners: list[ViewListener] = []
        self._tasks: set[asyncio.Task[None]] = set()
        if media is not None:
            media.on_track_published(self._track_published)
            media.on_track_unpublished(self._track_unpublished)

    # ------------------------------------------------------------------
    # View
    # ------------------------------------------------------------------
    @property
    def last_slot(self) -> int | None:
        return self._last_slot

    @property
    def pending_camera(self) -> bool | None:
        return self._pending_camera

    def on_change(self, listener: ViewListener) -> ViewListener:
        self._listeners.append(listener)
        return listener

    def server_slot(self) -> int | None:
        """Seat the latest snapshot gives this participant, if any."""

        for slot_number, identity in self._slots.items():
            if identity == self.identity:
                return slot_number
        return None

    def display_name(self, identity: str) -> str | None:
        return self._display_names.get(identity)

    def camera_enabled(self, identity: str) -> bool:
        if identity == self.identity and self._pending_camera is not None:
            return self._pending_camera
        return self._server_cameras.get(identity, False)

    def view(self) -> SeatingView:
        occupants = dict(self._slots)
        own_slot = self.server_slot()
        if own_slot is None and self._last_slot is not None and not self._released:
            # Keep showing ourselves where we last sat until the server catches up.
            occupants[self._last_slot] = self.identity
            own_slot = self._last_slot

        tiles = []
        for slot_number in range(1, self.slot_count + 1):
            identity = occupants.get(slot_number)
            tiles.append(
                Tile(
                    slot_number=slot_number,
                    identity=identity,
                    is_self=identity is not None and identity == self.identity,
                    is_host_slot=slot_number == self.host_slot,
                    camera_enabled=self.camera_enabled(identity) if identity else False,
                    video_available=bool(identity and self._has_video(identity)),
                    eliminated=bool(identity and self._killed.get(identity)),
                    display_name=self._display_names.get(identity) if identity else None,
                )
            )
        return SeatingView(
            tiles=tuple(tiles),
            own_slot=own_slot,
            host_identity=occupants.get(self.host_slot),
        )

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------
    async def handle_status(self, status: ChannelStatus, reason: str | None) -> None:
        if status is ChannelStatus.CONNECTED:
            self._awaiting_snapshot = True
        logger.debug("Channel status changed", extra={"status": status.value, "reason": reason})

    async def handle_message(self, payload: Mapping[str, Any]) -> None:
        try:
            message = parse_server_message(payload)
        except ProtocolError as exc:
            logger.warning("Ignoring server frame", extra={"detail": str(exc)})
            return

        if isinstance(message, SlotsUpdate):
            await self._apply_slots(message)
        elif isinstance(message, CameraStatesUpdate):
            self._apply_cameras(message)
        elif isinstance(message, PlayerStatesUpdate):
            self._killed = {k: v for k, v in message.player_states.killed_players.items() if v}
        elif isinstance(message, DisplayNameUpdate):
            self._display_names[message.user_id] = message.display_name
        elif isinstance(message, RenameSuccess):
            logger.info(
                "Participant renamed",
                extra={"identity": message.user_id, "display_name": message.display_name},
            )
            return
        elif isinstance(message, SlotBusyNotice):
            await self._slot_busy(message.slot_number)
            return
        elif isinstance(message, SlotSelectionResult):
            if self._auto_attempt is not None and message.slot_number == self._auto_attempt:
                if not message.success:
                    await self._slot_busy(message.slot_number)
                    return
                self._auto_attempt = None
            if not message.success:
                logger.info(
                    "Slot request rejected",
                    extra={"slot": message.slot_number, "detail": message.message},
                )
            return
        elif isinstance(message, (OperationFailed, ErrorNotice)):
            logger.warning("Server rejected a request", extra={"detail": message.dump()})
            return
        else:
            return
        self._notify()

    async def _apply_slots(self, message: SlotsUpdate) -> None:
        self._slots = {entry.slot_number: entry.user_id for entry in message.slots}
        own_slot = self.server_slot()
        if own_slot is not None:
            self._remember(own_slot)
        for identity in self._slots.values():
            self._seed_tracks(identity)

        if self._awaiting_snapshot:
            self._awaiting_snapshot = False
            if own_slot is None and self.auto_select and not self._released:
                await self._select_initial_slot()
        if own_slot is None and self._auto_attempt is None:
            # The server seated us elsewhere or nowhere, and no reclaim is in flight.
            self._remember(None)

    def _apply_cameras(self, message: CameraStatesUpdate) -> None:
        self._server_cameras = dict(message.camera_states)
        pending = self._pending_camera
        if pending is not None and self._server_cameras.get(self.identity, False) == pending:
            self._pending_camera = None

    async def _slot_busy(self, slot_number: int) -> None:
        if self._auto_attempt != slot_number:
            logger.info("Requested slot is busy", extra={"slot": slot_number})
            return
        # Our previous seat was taken while we were away; take any free one.
        self._auto_attempt = None
        self._remember(None)
        await self._send(SelectSlot())
        self._notify()

    async def _select_initial_slot(self) -> None:
        last = self._last_slot
        if last is not None and last not in self._slots:
            self._auto_attempt = last
            await self._send(SelectSlot(slot_number=last))
        else:
            if last is not None:
                self._remember(None)
            self._auto_attempt = None
            await self._send(SelectSlot())

    # ------------------------------------------------------------------
    # Outbound requests
    # ------------------------------------------------------------------
    async def request_slot(self, slot_number: int) -> None:
        self._released = False
        await self._send(SelectSlot(slot_number=slot_number))

    async def request_auto_slot(self) -> None:
        self._released = False
        await self._send(SelectSlot())

    async def request_move(self, target_identity: str, slot_number: int) -> None:
        await self._send(
            SelectSlot(slot_number=slot_number, drag_and_drop=True, target_user_id=target_identity)
        )

    async def request_release(self) -> None:
        self._released = True
        self._remember(None)
        await self._send(ReleaseSlot())
        self._notify()

    async def request_camera(self, enabled: bool) -> None:
        """Apply the toggle locally, tell the server, then drive the device."""

        self._pending_camera = enabled
        self._notify()
        await self._send(CameraStateChange(enabled=enabled))
        if self.media is not None:
            self._spawn(self._drive_camera(enabled))

    async def request_kill(self, target_identity: str) -> None:
        await self._send(KillPlayer(target_user_id=target_identity))

    async def request_revive(self, target_identity: str) -> None:
        await self._send(RevivePlayer(target_user_id=target_identity))

    async def request_reset_players(self) -> None:
        await self._send(ResetPlayerStates())

    async def request_shuffle(self) -> None:
        await self._send(ShuffleUsers())

    async def request_rename(self, target_identity: str, name: str) -> None:
        await self._send(RenameUser(target_user_id=target_identity, new_name=name))

    async def request_player_states(self) -> None:
        await self._send(GetPlayerStates())

    async def wait_idle(self) -> None:
        """Wait for background media-plane calls to finish."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Media plane
    # ------------------------------------------------------------------
    async def _drive_camera(self, enabled: bool) -> None:
        assert self.media is not None
        if not enabled:
            await self.media.disable_camera()
            return
        handle = await self.media.enable_camera()
        if handle is not None:
            return
        logger.warning("Camera could not be started; turning it back off")
        if self._pending_camera is True or self._server_cameras.get(self.identity):
            self._pending_camera = False
            self._notify()
            await self._send(CameraStateChange(enabled=False))

    def _track_published(self, handle: TrackHandle) -> None:
        if handle.kind != VIDEO_KIND:
            return
        self._tracks.setdefault(handle.identity, set()).add(handle.track_id)
        self._notify()

    def _track_unpublished(self, handle: TrackHandle) -> None:
        tracks = self._tracks.get(handle.identity)
        if not tracks:
            return
        tracks.discard(handle.track_id)
        if not tracks:
            self._tracks.pop(handle.identity, None)
        self._notify()

    def _seed_tracks(self, identity: str) -> None:
        if self.media is None or identity in self._seeded:
            return
        self._seeded.add(identity)
        for handle in self.media.list_active_tracks(identity):
            if handle.kind == VIDEO_KIND:
                self._tracks.setdefault(identity, set()).add(handle.track_id)

    def _has_video(self, identity: str) -> bool:
        return bool(self._tracks.get(identity))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    async def _send(self, message: CamelModel) -> None:
        await self._send_callback(message.dump())

    def _remember(self, slot_number: int | None) -> None:
        if slot_number == self._last_slot:
            return
        self._last_slot = slot_number
        if self._on_slot_change is not None:
            self._on_slot_change(slot_number)

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Media plane call failed", exc_info=exc)

    def _notify(self) -> None:
        if not self._listeners:
            return
        view = self.view()
        for listener in list(self._listeners):
            try:
                listener(view)
            except Exception:
                logger.exception("View listener failed")


__all__ = ["ReconciliationEngine", "SeatingView", "Tile"]
