"""Single-writer coordinator for seats, camera flags and player flags."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import random
from functools import partial
from typing import Any, Awaitable, Callable

from fastapi.websockets import WebSocket

from app.config import get_settings
from app.monitoring.metrics import (
    connection_supersessions_total,
    protocol_errors_total,
    realtime_connections,
    realtime_events_total,
    seat_evictions_total,
    seats_occupied,
)

from ..protocol import (
    CameraStateChange,
    CameraStatesUpdate,
    ClientMessage,
    DisplayNameUpdate,
    ErrorNotice,
    GetPlayerStates,
    KillPlayer,
    OperationFailed,
    Ping,
    PlayerStatesUpdate,
    Pong,
    ProtocolError,
    Register,
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
    parse_client_message,
)
from .cameras import CameraStateStore, DisplayNameStore, PlayerStateStore
from .coalesce import CoalescingBroadcaster
from .registry import (
    SUPERSEDED_CLOSE_CODE,
    SUPERSEDED_CLOSE_REASON,
    Connection,
    ConnectionRegistry,
)
from .slots import (
    HOST_SLOT,
    SLOT_COUNT,
    InvalidSlot,
    InvalidTarget,
    SlotAllocationTable,
    SlotBusy,
    SlotError,
)

logger = logging.getLogger(__name__)

Job = Callable[[], Awaitable[Any]]


class CoordinatorNotRunning(RuntimeError):
    """Raised when work is submitted before ``start()`` or after ``stop()``."""


class SessionCoordinator:
    """Own every piece of shared session state behind one inbox.

    Websocket handlers, grace timers and coalescing timers never touch the
    registry, the slot table or the flag stores directly: they enqueue jobs,
    and a single worker task runs each job (mutation plus resulting
    broadcasts) to completion before taking the next one.
    """

    def __init__(
        self,
        *,
        slot_count: int = SLOT_COUNT,
        host_slot: int = HOST_SLOT,
        grace_period_seconds: float = 5.0,
        camera_window_seconds: float = 0.15,
        slot_window_seconds: float = 0.0,
        rng: random.Random | None = None,
    ) -> None:
        self.registry = ConnectionRegistry()
        self.slots = SlotAllocationTable(slot_count, host_slot)
        self.cameras = CameraStateStore()
        self.players = PlayerStateStore()
        self.names = DisplayNameStore()
        self.grace_period_seconds = grace_period_seconds
        self._rng = rng or random.Random()
        self._inbox: asyncio.Queue[tuple[Job, asyncio.Future[Any] | None]] | None = None
        self._worker: asyncio.Task[None] | None = None
        self._current: asyncio.Future[Any] | None = None
        self._slot_broadcaster = CoalescingBroadcaster(
            "slots", slot_window_seconds, self._broadcast_slots, self._submit_nowait
        )
        self._camera_broadcaster = CoalescingBroadcaster(
            "cameras", camera_window_seconds, self._broadcast_cameras, self._submit_nowait
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    async def start(self) -> None:
        if self.running:
            return
        self._inbox = asyncio.Queue()
        self._worker = asyncio.create_task(self._run(), name="seatsync-coordinator")

    async def stop(self) -> None:
        worker, self._worker = self._worker, None
        if worker is not None:
            worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await worker
        if self._current is not None and not self._current.done():
            self._current.cancel()
        self._current = None
        if self._inbox is not None:
            while not self._inbox.empty():
                _, future = self._inbox.get_nowait()
                if future is not None and not future.done():
                    future.cancel()
        self._inbox = None
        self._slot_broadcaster.cancel()
        self._camera_broadcaster.cancel()
        self.registry.clear()
        self.slots.clear()
        self.cameras.clear()
        self.players.clear()
        self.names.clear()
        realtime_connections.labels("session").set(0)
        seats_occupied.set(0)

    async def _run(self) -> None:
        inbox = self._inbox
        assert inbox is not None
        while True:
            job, future = await inbox.get()
            self._current = future
            try:
                result = await job()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                if future is not None and not future.done():
                    future.set_exception(exc)
                else:
                    logger.exception("Session job failed")
            else:
                if future is not None and not future.done():
                    future.set_result(result)
            finally:
                self._current = None
                inbox.task_done()

    async def _submit(self, job: Job) -> Any:
        if self._inbox is None or not self.running:
            raise CoordinatorNotRunning("Session coordinator is not running")
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._inbox.put_nowait((job, future))
        return await future

    def _submit_nowait(self, job: Job) -> None:
        if self._inbox is None:
            logger.debug("Dropping deferred job; coordinator stopped")
            return
        self._inbox.put_nowait((job, None))

    # ------------------------------------------------------------------
    # Entry points used by the websocket layer
    # ------------------------------------------------------------------
    def open_connection(self, websocket: WebSocket) -> Connection:
        return Connection(websocket=websocket)

    async def receive(self, connection: Connection, raw: str | bytes | dict[str, Any]) -> None:
        """Decode one frame from *connection* and apply it."""

        try:
            message = parse_client_message(raw)
        except ProtocolError as exc:
            protocol_errors_total.labels("decode").inc()
            logger.warning(
                "Dropping malformed frame",
                extra={"connection": connection.id, "identity": connection.identity, "detail": str(exc)},
            )
            await connection.send(ErrorNotice(detail=str(exc)).dump())
            return

        if isinstance(message, Ping):
            await connection.send(Pong().dump())
            return
        if isinstance(message, Pong):
            return
        await self._submit(partial(self._handle, connection, message))

    async def disconnect(self, connection: Connection) -> None:
        if not self.running:
            return
        await self._submit(partial(self._handle_disconnect, connection))

    async def snapshot(self) -> dict[str, Any]:
        """Return the current seating, camera and player snapshots."""

        return await self._submit(self._snapshot)

    # ------------------------------------------------------------------
    # Jobs (run on the worker task only)
    # ------------------------------------------------------------------
    async def _snapshot(self) -> dict[str, Any]:
        return {
            "slots": self.slots.snapshot(),
            "cameraStates": self.cameras.snapshot(),
            "playerStates": self.players.snapshot(),
            "displayNames": self.names.snapshot(),
            "hostUserId": self.slots.host,
            "connections": len(self.registry),
        }

    async def _handle(self, connection: Connection, message: ClientMessage) -> None:
        if isinstance(message, Register):
            await self._handle_register(connection, message)
            return

        identity = connection.identity
        if identity is None:
            protocol_errors_total.labels("unregistered").inc()
            logger.warning(
                "Dropping %s received before register",
                message.type,
                extra={"connection": connection.id},
            )
            await connection.send(ErrorNotice(detail="Register before sending other messages").dump())
            return
        if self.registry.lookup(identity) is not connection:
            logger.debug(
                "Ignoring %s from superseded connection",
                message.type,
                extra={"connection": connection.id, "identity": identity},
            )
            return

        if isinstance(message, SelectSlot):
            await self._handle_select(connection, identity, message)
        elif isinstance(message, ReleaseSlot):
            await self._handle_release(identity)
        elif isinstance(message, CameraStateChange):
            await self._handle_camera(identity, message.enabled)
        elif isinstance(message, (KillPlayer, RevivePlayer, ResetPlayerStates)):
            await self._handle_player_state(connection, identity, message)
        elif isinstance(message, ShuffleUsers):
            await self._handle_shuffle(connection, identity)
        elif isinstance(message, RenameUser):
            await self._handle_rename(connection, identity, message)
        elif isinstance(message, GetPlayerStates):
            realtime_events_total.labels("players", "in", message.type).inc()
            await connection.send(self._players_payload())

    async def _handle_register(self, connection: Connection, message: Register) -> None:
        identity = message.user_id
        if connection.identity is not None and connection.identity != identity:
            protocol_errors_total.labels("identity_change").inc()
            await connection.send(
                ErrorNotice(detail="Connection is already registered as another participant").dump()
            )
            return

        previous = self.registry.register(identity, connection)
        realtime_events_total.labels("session", "in", "register").inc()
        if previous is not None:
            connection_supersessions_total.inc()
            logger.info(
                "Participant connected again; closing older connection",
                extra={"identity": identity, "connection": previous.id},
            )
            await previous.close(SUPERSEDED_CLOSE_CODE, SUPERSEDED_CLOSE_REASON)
        self._update_connection_gauge()

        camera_created = self.cameras.initialize(identity)
        await connection.send(self._slots_payload())
        await connection.send(self._cameras_payload())
        await connection.send(self._players_payload())
        for named, display_name in self.names.snapshot().items():
            await connection.send(DisplayNameUpdate(user_id=named, display_name=display_name).dump())
        if camera_created:
            await self._camera_broadcaster.schedule()

    async def _handle_select(self, connection: Connection, identity: str, message: SelectSlot) -> None:
        requested = message.slot_number
        try:
            if message.drag_and_drop and message.target_user_id and message.target_user_id != identity:
                if requested is None:
                    raise InvalidSlot(None, "slotNumber is required to move a participant")
                target = message.target_user_id
                if target not in self.registry and self.slots.slot_of(target) is None:
                    raise InvalidTarget(requested, "Unknown participant")
                action = "move"
                changed = self.slots.move(identity, target, requested)
                slot_number = requested
            elif requested is None:
                action = "auto_assign"
                before = self.slots.slot_of(identity)
                slot_number = self.slots.auto_assign(identity)
                changed = before != slot_number
            else:
                action = "select"
                changed = self.slots.select(identity, requested)
                slot_number = requested
        except SlotBusy as exc:
            realtime_events_total.labels("slots", "in", "busy").inc()
            await connection.send(SlotBusyNotice(slot_number=exc.slot_number).dump())
            await connection.send(
                SlotSelectionResult(success=False, slot_number=exc.slot_number, message=exc.message).dump()
            )
            return
        except SlotError as exc:
            realtime_events_total.labels("slots", "in", "rejected").inc()
            await connection.send(
                SlotSelectionResult(success=False, slot_number=exc.slot_number, message=exc.message).dump()
            )
            return

        realtime_events_total.labels("slots", "in", action).inc()
        if changed:
            await self._slots_changed()
        await connection.send(SlotSelectionResult(success=True, slot_number=slot_number).dump())

    async def _handle_release(self, identity: str) -> None:
        released = self.slots.release(identity)
        realtime_events_total.labels("slots", "in", "release").inc()
        if released is not None:
            await self._slots_changed()

    async def _handle_camera(self, identity: str, enabled: bool) -> None:
        realtime_events_total.labels("cameras", "in", "on" if enabled else "off").inc()
        if self.cameras.set(identity, enabled):
            await self._camera_broadcaster.schedule()

    async def _handle_player_state(
        self,
        connection: Connection,
        identity: str,
        message: KillPlayer | RevivePlayer | ResetPlayerStates,
    ) -> None:
        if not self.slots.is_host(identity):
            await connection.send(
                OperationFailed(
                    operation=message.type, message="Only the host can change player states"
                ).dump()
            )
            return
        if isinstance(message, KillPlayer):
            changed = self.players.kill(message.target_user_id)
        elif isinstance(message, RevivePlayer):
            changed = self.players.revive(message.target_user_id)
        else:
            changed = self.players.clear()
        realtime_events_total.labels("players", "in", message.type).inc()
        if changed:
            await self._broadcast(self._players_payload(), topic="players")

    async def _handle_shuffle(self, connection: Connection, identity: str) -> None:
        try:
            changed = self.slots.shuffle(identity, self._rng)
        except SlotError as exc:
            await connection.send(OperationFailed(operation="shuffle_users", message=exc.message).dump())
            return
        realtime_events_total.labels("slots", "in", "shuffle").inc()
        if changed:
            await self._slots_changed()

    async def _handle_rename(self, connection: Connection, identity: str, message: RenameUser) -> None:
        if not self.slots.is_host(identity):
            await connection.send(
                OperationFailed(
                    operation=message.type, message="Only the host can rename participants"
                ).dump()
            )
            return
        target = message.target_user_id
        if self.slots.slot_of(target) is None:
            await connection.send(
                OperationFailed(operation=message.type, message="Participant is not seated").dump()
            )
            return
        try:
            changed = self.names.set(target, message.new_name)
        except ValueError as exc:
            await connection.send(OperationFailed(operation=message.type, message=str(exc)).dump())
            return

        display_name = self.names.get(target)
        assert display_name is not None
        realtime_events_total.labels("names", "in", "rename").inc()
        logger.info("Participant renamed", extra={"identity": target, "display_name": display_name})
        if changed:
            await self._broadcast(
                DisplayNameUpdate(user_id=target, display_name=display_name).dump(), topic="names"
            )
        await connection.send(RenameSuccess(user_id=target, display_name=display_name).dump())

    async def _handle_disconnect(self, connection: Connection) -> None:
        if not self.registry.unregister(connection):
            return
        identity = connection.identity
        assert identity is not None
        self._update_connection_gauge()
        realtime_events_total.labels("session", "in", "disconnect").inc()
        if self.grace_period_seconds <= 0:
            await self._evict(identity)
            return
        self.registry.schedule_eviction(identity, self.grace_period_seconds, self._queue_eviction)
        logger.info(
            "Participant disconnected; holding seat",
            extra={"identity": identity, "grace_seconds": self.grace_period_seconds},
        )

    def _queue_eviction(self, identity: str) -> None:
        self._submit_nowait(partial(self._evict, identity))

    async def _evict(self, identity: str) -> None:
        if identity in self.registry:
            return
        released = self.slots.release(identity)
        camera_removed = self.cameras.remove(identity)
        player_removed = self.players.remove(identity)
        seat_evictions_total.inc()
        logger.info("Evicted participant", extra={"identity": identity, "slot": released})
        if released is not None:
            await self._slots_changed()
        if camera_removed:
            await self._camera_broadcaster.schedule()
        if player_removed:
            await self._broadcast(self._players_payload(), topic="players")

    # ------------------------------------------------------------------
    # Broadcasting
    # ------------------------------------------------------------------
    def _slots_payload(self) -> dict[str, Any]:
        return SlotsUpdate(slots=self.slots.snapshot()).dump()

    def _cameras_payload(self) -> dict[str, Any]:
        return CameraStatesUpdate(camera_states=self.cameras.snapshot()).dump()

    def _players_payload(self) -> dict[str, Any]:
        return PlayerStatesUpdate(player_states=self.players.snapshot()).dump()

    async def _slots_changed(self) -> None:
        seats_occupied.set(len(self.slots))
        await self._slot_broadcaster.schedule()

    async def _broadcast_slots(self) -> None:
        await self._broadcast(self._slots_payload(), topic="slots")

    async def _broadcast_cameras(self) -> None:
        await self._broadcast(self._cameras_payload(), topic="cameras")

    async def _broadcast(self, payload: dict[str, Any], *, topic: str) -> None:
        connections = self.registry.connections()
        if not connections:
            return
        results = await asyncio.gather(*(connection.send(payload) for connection in connections))
        realtime_events_total.labels(topic, "out", "snapshot").inc(sum(1 for sent in results if sent))

    def _update_connection_gauge(self) -> None:
        realtime_connections.labels("session").set(len(self.registry))


# ---------------------------------------------------------------------------
# Module level instance wired from settings
# ---------------------------------------------------------------------------

settings = get_settings()

coordinator = SessionCoordinator(
    slot_count=settings.seat_count,
    host_slot=settings.host_seat,
    grace_period_seconds=settings.seat_grace_period_seconds,
    camera_window_seconds=settings.camera_broadcast_window_seconds,
    slot_window_seconds=settings.slot_broadcast_window_seconds,
)


async def startup_realtime() -> None:
    await coordinator.start()


async def shutdown_realtime() -> None:
    await coordinator.stop()


def get_coordinator() -> SessionCoordinator:
    return coordinator


__all__ = [
    "CoordinatorNotRunning",
    "SessionCoordinator",
    "get_coordinator",
    "shutdown_realtime",
    "startup_realtime",
]
