"""Client library for joining a seat session."""

from .channel import ChannelConfig, ChannelStatus, TransportChannel  # noqa: F401
from .identity import IdentityStore  # noqa: F401
from .media import HeadlessMediaPlane, MediaPlane, TrackHandle  # noqa: F401
from .reconcile import ReconciliationEngine, SeatingView, Tile  # noqa: F401
from .session import SeatClient  # noqa: F401
from .tokens import TokenClient, TokenGrant, TokenRequestError  # noqa: F401

__all__ = [
    "ChannelConfig",
    "ChannelStatus",
    "HeadlessMediaPlane",
    "IdentityStore",
    "MediaPlane",
    "ReconciliationEngine",
    "SeatClient",
    "SeatingView",
    "Tile",
    "TokenClient",
    "TokenGrant",
    "TokenRequestError",
    "TransportChannel",
]
