from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

import pytest
from websockets.exceptions import ConnectionClosed
from websockets.frames import Close

from seatsync.client.channel import ChannelConfig
from seatsync.client.identity import IdentityStore
from seatsync.client.session import SeatClient


class SeatServerConnection:
    """Answers seat requests the way the coordinator would for one client."""

    def __init__(self, seats: dict[int, str]) -> None:
        self.seats = seats
        self.received: list[dict[str, Any]] = []
        self._incoming: asyncio.Queue[Any] = asyncio.Queue()
        self.identity: str | None = None

    async def send(self, payload: str) -> None:
        message = json.loads(payload)
        self.received.append(message)
        if message["type"] == "register":
            self.identity = message["userId"]
            self._push(self._slots())
            self._push({"type": "camera_states_update", "cameraStates": {self.identity: False}})
            self._push({"type": "player_states_update", "playerStates": {"killedPlayers": {}}})
        elif message["type"] == "select_slot" and not message.get("dragAndDrop"):
            number = message.get("slotNumber") or min(
                n for n in range(1, 12) if n not in self.seats
            )
            if number in self.seats:
                self._push({"type": "slot_busy", "slotNumber": number})
                return
            self.seats[number] = self.identity
            self._push(self._slots())
            self._push({"type": "slot_selection_result", "success": True, "slotNumber": number})

    async def recv(self) -> str:
        item = await self._incoming.get()
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self._incoming.put_nowait(ConnectionClosed(None, Close(code, reason)))

    def _slots(self) -> dict[str, Any]:
        return {
            "type": "slots_update",
            "slots": [
                {"userId": user, "slotNumber": number} for number, user in sorted(self.seats.items())
            ],
        }

    def _push(self, message: dict[str, Any]) -> None:
        self._incoming.put_nowait(json.dumps(message))


async def _settle(predicate, timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        assert loop.time() < deadline, "condition not met in time"
        await asyncio.sleep(0.005)


def _client(tmp_path: Path, seats: dict[int, str]) -> tuple[SeatClient, list[SeatServerConnection]]:
    connections: list[SeatServerConnection] = []

    async def connector(url: str, **kwargs: Any) -> SeatServerConnection:
        connection = SeatServerConnection(seats)
        connections.append(connection)
        return connection

    client = SeatClient(
        "ws://seats.test/ws/session",
        IdentityStore(tmp_path / "identity.json"),
        config=ChannelConfig(heartbeat_interval=0),
        connector=connector,
    )
    return client, connections


@pytest.mark.anyio("asyncio")
async def test_client_registers_and_takes_a_free_seat(tmp_path: Path) -> None:
    client, connections = _client(tmp_path, {1: "someone-else"})

    await client.start()
    await _settle(lambda: client.view().own_slot == 2)

    assert connections[0].received[0] == {"type": "register", "userId": client.identity}
    assert connections[0].received[1] == {"type": "select_slot", "dragAndDrop": False}
    assert IdentityStore(tmp_path / "identity.json").last_slot == 2
    await client.stop()


@pytest.mark.anyio("asyncio")
async def test_client_reclaims_remembered_seat(tmp_path: Path) -> None:
    store = IdentityStore(tmp_path / "identity.json")
    store.load_or_create()
    store.remember_slot(9)
    client, connections = _client(tmp_path, {})

    await client.start()
    await _settle(lambda: bool(connections) and len(connections[0].received) >= 2)

    assert connections[0].received[1] == {
        "type": "select_slot",
        "slotNumber": 9,
        "dragAndDrop": False,
    }
    await client.stop()


@pytest.mark.anyio("asyncio")
async def test_host_helpers_send_wire_requests(tmp_path: Path) -> None:
    client, connections = _client(tmp_path, {12: "host"})

    await client.start()
    await _settle(lambda: client.view().own_slot == 1)

    await client.move_participant("bob", 5)
    await client.kill_player("bob")
    await client.revive_player("bob")
    await client.reset_player_states()
    await client.shuffle_seats()
    await client.rename_participant("bob", "Bobby")
    await client.refresh_player_states()
    await _settle(lambda: len(connections[0].received) >= 9)

    assert connections[0].received[2:] == [
        {"type": "select_slot", "slotNumber": 5, "dragAndDrop": True, "targetUserId": "bob"},
        {"type": "kill_player", "targetUserId": "bob"},
        {"type": "revive_player", "targetUserId": "bob"},
        {"type": "reset_player_states"},
        {"type": "shuffle_users"},
        {"type": "rename_user", "targetUserId": "bob", "newName": "Bobby"},
        {"type": "get_player_states"},
    ]
    await client.stop()
