from __future__ import annotations

from pathlib import Path

import pytest

from seatsync.client.cli import describe_view, parse_args
from seatsync.client.reconcile import SeatingView, Tile


def _view(*tiles: Tile) -> SeatingView:
    by_slot = {tile.slot_number: tile for tile in tiles}
    return SeatingView(
        tiles=tuple(by_slot.get(number, Tile(slot_number=number)) for number in range(1, 13)),
        own_slot=None,
        host_identity=None,
    )


def test_describe_view_marks_self_camera_and_elimination() -> None:
    view = _view(
        Tile(slot_number=1, identity="alice", is_self=True),
        Tile(slot_number=5, identity="bob", camera_enabled=True, video_available=True),
        Tile(slot_number=6, identity="carol", camera_enabled=True),
        Tile(slot_number=12, identity="host", eliminated=True),
    )

    assert describe_view(view) == "1:alice* 5:bob[cam] 6:carol[cam-pending] 12:host[out]"


def test_describe_empty_view() -> None:
    assert describe_view(_view()) == "<empty>"


def test_parse_args_defaults(tmp_path: Path) -> None:
    args = parse_args(["ws://localhost:8000/ws/session", "--identity-file", str(tmp_path / "id.json")])

    assert args.url == "ws://localhost:8000/ws/session"
    assert args.slot is None
    assert args.camera is False
    assert args.token_url is None
    assert args.initial_delay == 1.0
    assert args.max_delay == 30.0


def test_parse_args_rejects_out_of_range_slot() -> None:
    with pytest.raises(SystemExit):
        parse_args(["ws://localhost:8000/ws/session", "--slot", "13"])
