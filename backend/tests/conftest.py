"""Shared pytest fixtures for backend tests."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Iterator

import pytest
from fastapi.testclient import TestClient
from fastapi.websockets import WebSocketState

ROOT_DIR = Path(__file__).resolve().parents[1]
for path in (ROOT_DIR, ROOT_DIR / "src"):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from app.main import app
from app.monitoring.metrics import reset_realtime_metrics


class FakeWebSocket:
    """Records what the coordinator sends instead of writing to a socket."""

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []
        self.closed: tuple[int, str | None] | None = None
        self.application_state = WebSocketState.CONNECTED

    async def send_json(self, data: dict[str, Any]) -> None:
        if self.application_state != WebSocketState.CONNECTED:
            raise RuntimeError("socket closed")
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        self.closed = (code, reason)
        self.application_state = WebSocketState.DISCONNECTED

    def of_type(self, message_type: str) -> list[dict[str, Any]]:
        return [message for message in self.sent if message.get("type") == message_type]

    def last(self, message_type: str) -> dict[str, Any]:
        matches = self.of_type(message_type)
        assert matches, f"no {message_type} message was sent"
        return matches[-1]


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def reset_metrics() -> Iterator[None]:
    reset_realtime_metrics()
    yield
    reset_realtime_metrics()


@pytest.fixture()
def make_socket() -> type[FakeWebSocket]:
    return FakeWebSocket


@pytest.fixture()
def client() -> Iterator[TestClient]:
    """Yield a FastAPI TestClient with the coordinator started."""

    with TestClient(app) as test_client:
        yield test_client
