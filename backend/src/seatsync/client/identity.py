"""Durable participant identity kept on the client device."""

from __future__ import annotations

import json
import logging
import os
import uuid
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

IDENTITY_PREFIX = "participant"


def generate_identity(prefix: str = IDENTITY_PREFIX) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


class IdentityStore:
    """JSON file holding the device identity and the last seat it held.

    The identity is created on first use and never changes afterwards, so
    every connection from this device (or a duplicate window sharing the
    file) registers under the same name and older sessions get superseded.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)
        self._data: dict[str, Any] | None = None

    def load_or_create(self, *, prefix: str = IDENTITY_PREFIX) -> str:
        data = self._load()
        identity = data.get("identity")
        if not isinstance(identity, str) or not identity:
            identity = generate_identity(prefix)
            data["identity"] = identity
            self._save()
            logger.info("Created participant identity", extra={"identity": identity})
        return identity

    @property
    def last_slot(self) -> int | None:
        value = self._load().get("lastSlot")
        return value if isinstance(value, int) else None

    def remember_slot(self, slot_number: int | None) -> None:
        data = self._load()
        if data.get("lastSlot") == slot_number:
            return
        if slot_number is None:
            data.pop("lastSlot", None)
        else:
            data["lastSlot"] = slot_number
        self._save()

    def forget_slot(self) -> None:
        self.remember_slot(None)

    def _load(self) -> dict[str, Any]:
        if self._data is not None:
            return self._data
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            self._data = {}
            return self._data
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Identity file is corrupt; starting fresh", extra={"path": str(self.path)})
            parsed = {}
        self._data = parsed if isinstance(parsed, dict) else {}
        return self._data

    def _save(self) -> None:
        data = self._load()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")
        tmp_path.replace(self.path)


__all__ = ["IDENTITY_PREFIX", "IdentityStore", "generate_identity"]
