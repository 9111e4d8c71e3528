"""Per-participant flags and display names held by the session coordinator."""

from __future__ import annotations

from typing import Dict


class CameraStateStore:
    """Server-authoritative camera on/off flag per identity.

    An identity missing from the store is reported as camera-off by clients.
    """

    def __init__(self) -> None:
        self._states: Dict[str, bool] = {}

    def get(self, identity: str) -> bool:
        return self._states.get(identity, False)

    def initialize(self, identity: str) -> bool:
        """Add *identity* with the camera off; returns ``True`` if it was new."""

        if identity in self._states:
            return False
        self._states[identity] = False
        return True

    def set(self, identity: str, enabled: bool) -> bool:
        """Record the camera flag and report whether anything changed."""

        enabled = bool(enabled)
        if identity in self._states and self._states[identity] == enabled:
            return False
        self._states[identity] = enabled
        return True

    def remove(self, identity: str) -> bool:
        return self._states.pop(identity, None) is not None

    def clear(self) -> None:
        self._states.clear()

    def snapshot(self) -> dict[str, bool]:
        return dict(self._states)


class PlayerStateStore:
    """Host-controlled "eliminated" marker for seated participants."""

    def __init__(self) -> None:
        self._killed: Dict[str, bool] = {}

    def is_killed(self, identity: str) -> bool:
        return self._killed.get(identity, False)

    def kill(self, identity: str) -> bool:
        if self._killed.get(identity):
            return False
        self._killed[identity] = True
        return True

    def revive(self, identity: str) -> bool:
        return self._killed.pop(identity, None) is not None

    def remove(self, identity: str) -> bool:
        return self.revive(identity)

    def clear(self) -> bool:
        changed = bool(self._killed)
        self._killed.clear()
        return changed

    def snapshot(self) -> dict[str, dict[str, bool]]:
        return {"killedPlayers": dict(self._killed)}


class DisplayNameStore:
    """Names the host assigned to participants, keyed by identity.

    Renaming only changes what clients display; identities stay the key for
    seats and flags.
    """

    def __init__(self) -> None:
        self._names: Dict[str, str] = {}

    def get(self, identity: str) -> str | None:
        return self._names.get(identity)

    def set(self, identity: str, name: str) -> bool:
        name = name.strip()
        if not name:
            raise ValueError("Display name must not be blank")
        if self._names.get(identity) == name:
            return False
        self._names[identity] = name
        return True

    def clear(self) -> None:
        self._names.clear()

    def snapshot(self) -> dict[str, str]:
        return dict(self._names)


__all__ = ["CameraStateStore", "DisplayNameStore", "PlayerStateStore"]
