from __future__ import annotations

import json
from pathlib import Path

from seatsync.client.identity import IdentityStore, generate_identity


def test_generated_identities_are_unique() -> None:
    first = generate_identity()
    second = generate_identity()

    assert first.startswith("participant-")
    assert first != second


def test_identity_is_created_once_and_persisted(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "identity.json"

    identity = IdentityStore(path).load_or_create()

    assert IdentityStore(path).load_or_create() == identity
    assert json.loads(path.read_text(encoding="utf-8"))["identity"] == identity


def test_last_slot_round_trip(tmp_path: Path) -> None:
    path = tmp_path / "identity.json"
    store = IdentityStore(path)
    store.load_or_create()

    store.remember_slot(7)
    assert IdentityStore(path).last_slot == 7

    store.forget_slot()
    assert IdentityStore(path).last_slot is None
    assert "lastSlot" not in json.loads(path.read_text(encoding="utf-8"))


def test_corrupt_file_is_replaced(tmp_path: Path) -> None:
    path = tmp_path / "identity.json"
    path.write_text("{not json", encoding="utf-8")

    identity = IdentityStore(path).load_or_create()

    assert identity.startswith("participant-")
    assert json.loads(path.read_text(encoding="utf-8"))["identity"] == identity
