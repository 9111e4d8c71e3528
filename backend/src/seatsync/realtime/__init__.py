"""Server-side seat coordination: registry, slot table, flag stores and coordinator."""

from .managers import (  # noqa: F401
    CoordinatorNotRunning,
    SessionCoordinator,
    get_coordinator,
    shutdown_realtime,
    startup_realtime,
)

__all__ = [
    "startup_realtime",
    "shutdown_realtime",
    "get_coordinator",
    "CoordinatorNotRunning",
    "SessionCoordinator",
]
