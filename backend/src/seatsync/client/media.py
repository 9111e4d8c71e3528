"""Interface to the media plane that owns cameras and published tracks.

The seat client never captures or publishes video itself. It asks the media
plane to switch the local camera and listens for track notifications so a
tile only shows video once a track actually exists.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Callable, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

VIDEO_KIND = "video"


@dataclass(frozen=True, slots=True)
class TrackHandle:
    """A track published by some participant."""

    identity: str
    track_id: str
    kind: str = VIDEO_KIND


TrackCallback = Callable[[TrackHandle], None]


@runtime_checkable
class MediaPlane(Protocol):
    """Structural type for media transports (LiveKit, a test double, ...)."""

    async def enable_camera(self) -> TrackHandle | None:
        """Start the local camera and publish it.

        Returns the published track, or ``None`` when the camera could not be
        acquired (permission denied, no device).
        """
        ...

    async def disable_camera(self) -> None:
        """Stop and unpublish the local camera if it is running."""
        ...

    def on_track_published(self, callback: TrackCallback) -> None: ...

    def on_track_unpublished(self, callback: TrackCallback) -> None: ...

    def list_active_tracks(self, identity: str) -> list[TrackHandle]:
        """Return tracks currently published by *identity*."""
        ...


class HeadlessMediaPlane:
    """In-process media plane with no devices, for the CLI and tests.

    Enabling the camera publishes a synthetic track for the local identity
    unless ``camera_available`` is false.
    """

    def __init__(self, identity: str, *, camera_available: bool = True) -> None:
        self.identity = identity
        self.camera_available = camera_available
        self._tracks: dict[str, list[TrackHandle]] = {}
        self._published: list[TrackCallback] = []
        self._unpublished: list[TrackCallback] = []

    async def enable_camera(self) -> TrackHandle | None:
        if not self.camera_available:
            logger.info("No camera available")
            return None
        local = self._tracks.get(self.identity)
        if local:
            return local[0]
        handle = TrackHandle(identity=self.identity, track_id=uuid.uuid4().hex)
        self.publish(handle)
        return handle

    async def disable_camera(self) -> None:
        for handle in list(self._tracks.get(self.identity, [])):
            self.unpublish(handle)

    def on_track_published(self, callback: TrackCallback) -> None:
        self._published.append(callback)

    def on_track_unpublished(self, callback: TrackCallback) -> None:
        self._unpublished.append(callback)

    def list_active_tracks(self, identity: str) -> list[TrackHandle]:
        return list(self._tracks.get(identity, []))

    def publish(self, handle: TrackHandle) -> None:
        """Record a track and notify listeners (also used for remote tracks)."""

        self._tracks.setdefault(handle.identity, []).append(handle)
        for callback in list(self._published):
            callback(handle)

    def unpublish(self, handle: TrackHandle) -> None:
        tracks = self._tracks.get(handle.identity, [])
        if handle in tracks:
            tracks.remove(handle)
        if not tracks:
            self._tracks.pop(handle.identity, None)
        for callback in list(self._unpublished):
            callback(handle)


__all__ = ["HeadlessMediaPlane", "MediaPlane", "TrackCallback", "TrackHandle", "VIDEO_KIND"]
