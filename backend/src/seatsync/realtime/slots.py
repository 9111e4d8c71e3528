"""Seat occupancy for a single session.

The table keeps two views of the same data (slot -> identity and identity ->
slot) and mutates them together so that an identity never holds more than one
seat. Slot 12 is the host seat: it is never handed out automatically and its
occupant is the only identity allowed to rearrange other participants.
"""

from __future__ import annotations

import logging
import random
from typing import Dict

SLOT_COUNT = 12
HOST_SLOT = 12

logger = logging.getLogger(__name__)


class SlotError(Exception):
    """Base class for rejected seat operations."""

    def __init__(self, slot_number: int | None, message: str) -> None:
        super().__init__(message)
        self.slot_number = slot_number
        self.message = message


class SlotBusy(SlotError):
    """Raised when the requested seat is held by another identity."""

    def __init__(self, slot_number: int, occupant: str) -> None:
        super().__init__(slot_number, f"Slot {slot_number} is occupied")
        self.occupant = occupant


class InvalidSlot(SlotError):
    """Raised for seat numbers outside the table or not assignable."""


class NotHost(SlotError):
    """Raised when a host-only operation comes from someone else."""


class InvalidTarget(SlotError):
    """Raised when a host move names an identity that cannot be moved."""


class NoFreeSlot(SlotError):
    """Raised when auto-assignment finds every player seat taken."""


class SlotAllocationTable:
    """Authoritative slot -> identity map for one session."""

    def __init__(self, slot_count: int = SLOT_COUNT, host_slot: int = HOST_SLOT) -> None:
        if not 1 <= host_slot <= slot_count:
            raise ValueError("host_slot must be within the table")
        self.slot_count = slot_count
        self.host_slot = host_slot
        self._occupants: Dict[int, str] = {}
        self._seats: Dict[str, int] = {}

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def occupant(self, slot_number: int) -> str | None:
        return self._occupants.get(slot_number)

    def slot_of(self, identity: str) -> int | None:
        return self._seats.get(identity)

    @property
    def host(self) -> str | None:
        """Identity currently sitting in the host seat, if any."""

        return self._occupants.get(self.host_slot)

    def is_host(self, identity: str) -> bool:
        return identity is not None and self._occupants.get(self.host_slot) == identity

    def free_slots(self) -> list[int]:
        return [n for n in range(1, self.slot_count + 1) if n not in self._occupants]

    def __len__(self) -> int:
        return len(self._occupants)

    def snapshot(self) -> list[dict[str, str | int]]:
        """Return the full seating as ``[{userId, slotNumber}]`` ordered by slot."""

        return [
            {"userId": identity, "slotNumber": slot_number}
            for slot_number, identity in sorted(self._occupants.items())
        ]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def select(self, identity: str, slot_number: int) -> bool:
        """Seat *identity* at *slot_number*.

        Returns ``False`` when the identity already sits there. Raises
        :class:`SlotBusy` if another identity holds the seat.
        """

        self._check_range(slot_number)
        occupant = self._occupants.get(slot_number)
        if occupant == identity:
            return False
        if occupant is not None:
            raise SlotBusy(slot_number, occupant)
        self._vacate(identity)
        self._place(identity, slot_number)
        return True

    def release(self, identity: str) -> int | None:
        """Free whatever seat *identity* holds and return its number."""

        return self._vacate(identity)

    def auto_assign(self, identity: str) -> int:
        """Return the seat held by *identity*, seating it first if needed.

        New seats are taken in ascending order; the host seat is skipped.
        """

        current = self._seats.get(identity)
        if current is not None:
            return current
        for slot_number in range(1, self.slot_count + 1):
            if slot_number == self.host_slot:
                continue
            if slot_number not in self._occupants:
                self._place(identity, slot_number)
                return slot_number
        raise NoFreeSlot(None, "No free slots available")

    def move(self, actor: str, target: str, slot_number: int) -> bool:
        """Host override: put *target* into *slot_number*.

        A participant already sitting in *slot_number* swaps into the seat the
        target leaves behind, or loses its seat if the target had none.
        """

        if not self.is_host(actor):
            raise NotHost(slot_number, "Only the host can move participants")
        self._check_range(slot_number)
        if slot_number == self.host_slot:
            raise InvalidSlot(slot_number, "The host slot cannot be assigned")
        if target == actor:
            raise InvalidTarget(slot_number, "The host cannot be moved")

        previous = self._seats.get(target)
        if previous == slot_number:
            return False

        displaced = self._occupants.get(slot_number)
        self._vacate(target)
        if displaced is not None:
            self._vacate(displaced)
        self._place(target, slot_number)
        if displaced is not None and previous is not None:
            self._place(displaced, previous)
        logger.info(
            "Host moved participant",
            extra={
                "target": target,
                "slot": slot_number,
                "displaced": displaced,
                "previous": previous,
            },
        )
        return True

    def shuffle(self, actor: str, rng: random.Random | None = None) -> bool:
        """Host override: randomly permute non-host occupants over their seats."""

        if not self.is_host(actor):
            raise NotHost(None, "Only the host can shuffle participants")
        seats = sorted(n for n in self._occupants if n != self.host_slot)
        if len(seats) < 2:
            return False
        identities = [self._occupants[n] for n in seats]
        (rng or random).shuffle(identities)
        for slot_number, identity in zip(seats, identities):
            self._occupants[slot_number] = identity
            self._seats[identity] = slot_number
        return True

    def clear(self) -> None:
        self._occupants.clear()
        self._seats.clear()

    def validate(self) -> bool:
        """Return ``True`` when both views of the table agree."""

        if len(self._occupants) != len(self._seats):
            return False
        return all(self._occupants.get(n) == identity for identity, n in self._seats.items())

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _check_range(self, slot_number: int) -> None:
        if not 1 <= slot_number <= self.slot_count:
            raise InvalidSlot(slot_number, f"Slot must be between 1 and {self.slot_count}")

    def _place(self, identity: str, slot_number: int) -> None:
        self._occupants[slot_number] = identity
        self._seats[identity] = slot_number

    def _vacate(self, identity: str) -> int | None:
        slot_number = self._seats.pop(identity, None)
        if slot_number is not None:
            self._occupants.pop(slot_number, None)
        return slot_number


__all__ = [
    "HOST_SLOT",
    "SLOT_COUNT",
    "InvalidSlot",
    "InvalidTarget",
    "NoFreeSlot",
    "NotHost",
    "SlotAllocationTable",
    "SlotBusy",
    "SlotError",
]
