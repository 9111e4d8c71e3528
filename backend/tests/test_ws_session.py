from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from starlette.testclient import WebSocketTestSession
from starlette.websockets import WebSocketDisconnect

from app.main import app


def _register(connection: WebSocketTestSession, identity: str) -> dict[str, dict]:
    connection.send_json({"type": "register", "userId": identity})
    initial = {}
    for _ in range(3):
        message = connection.receive_json()
        initial[message["type"]] = message
    return initial


def _receive_until(connection: WebSocketTestSession, message_type: str, limit: int = 10) -> dict:
    for _ in range(limit):
        message = connection.receive_json()
        if message["type"] == message_type:
            return message
    raise AssertionError(f"{message_type} not received")


def test_register_and_select_round_trip(client: TestClient) -> None:
    with client.websocket_connect("/ws/session") as connection:
        initial = _register(connection, "alice")
        assert initial["slots_update"]["slots"] == []
        assert initial["camera_states_update"]["cameraStates"] == {"alice": False}

        connection.send_json({"type": "select_slot", "slotNumber": 3})
        update = _receive_until(connection, "slots_update")
        assert update["slots"] == [{"userId": "alice", "slotNumber": 3}]
        result = _receive_until(connection, "slot_selection_result")
        assert result == {"type": "slot_selection_result", "success": True, "slotNumber": 3}


def test_second_participant_sees_busy_slot(client: TestClient) -> None:
    with client.websocket_connect("/ws/session") as alice:
        _register(alice, "alice")
        alice.send_json({"type": "select_slot", "slotNumber": 1})
        _receive_until(alice, "slot_selection_result")

        with client.websocket_connect("/ws/session") as bob:
            initial = _register(bob, "bob")
            assert initial["slots_update"]["slots"] == [{"userId": "alice", "slotNumber": 1}]

            bob.send_json({"type": "select_slot", "slotNumber": 1})
            busy = _receive_until(bob, "slot_busy")
            assert busy == {"type": "slot_busy", "slotNumber": 1}


def test_ping_gets_pong_and_bad_frames_get_errors(client: TestClient) -> None:
    with client.websocket_connect("/ws/session") as connection:
        connection.send_json({"type": "ping"})
        assert connection.receive_json() == {"type": "pong"}

        connection.send_text("not json")
        assert connection.receive_json() == {"type": "error", "detail": "Invalid payload"}

        connection.send_json({"type": "release_slot"})
        error = connection.receive_json()
        assert error["type"] == "error"


def test_duplicate_identity_closes_older_socket(client: TestClient) -> None:
    with client.websocket_connect("/ws/session") as first:
        _register(first, "alice")
        with client.websocket_connect("/ws/session") as second:
            _register(second, "alice")

            with pytest.raises(WebSocketDisconnect) as exc_info:
                for _ in range(10):
                    first.receive_json()
            assert exc_info.value.code == 4001


def test_session_snapshot_endpoint(client: TestClient) -> None:
    with client.websocket_connect("/ws/session") as connection:
        _register(connection, "host")
        connection.send_json({"type": "select_slot", "slotNumber": 12})
        _receive_until(connection, "slot_selection_result")

        response = client.get("/api/session")

    assert response.status_code == 200, response.text
    payload = response.json()
    assert payload["slots"] == [{"userId": "host", "slotNumber": 12}]
    assert payload["hostUserId"] == "host"


def test_binary_frames_get_errors_and_keep_socket_open(client: TestClient) -> None:
    with client.websocket_connect("/ws/session") as connection:
        _register(connection, "alice")

        connection.send_bytes(b"\xff\x00")
        error = _receive_until(connection, "error")
        assert error["detail"] == "Invalid payload"

        connection.send_json({"type": "ping"})
        assert _receive_until(connection, "pong") == {"type": "pong"}


def test_binary_json_frames_are_decoded(client: TestClient) -> None:
    with client.websocket_connect("/ws/session") as connection:
        _register(connection, "alice")

        connection.send_bytes(b'{"type": "select_slot", "slotNumber": 4}')
        result = _receive_until(connection, "slot_selection_result")
        assert result == {"type": "slot_selection_result", "success": True, "slotNumber": 4}


def test_stopped_coordinator_closes_socket_for_restart() -> None:
    # Without entering the context manager the startup hook never runs.
    idle_client = TestClient(app)

    with idle_client.websocket_connect("/ws/session") as connection:
        connection.send_json({"type": "register", "userId": "alice"})
        with pytest.raises(WebSocketDisconnect) as exc_info:
            connection.receive_json()
    assert exc_info.value.code == 1012

    response = idle_client.get("/api/session")
    assert response.status_code == 503
    assert response.json()["detail"] == "Seat coordinator is not running"
