"""Metric definitions for the seat coordination service."""

from __future__ import annotations

from .registry import registry


realtime_events_total = registry.counter(
    "realtime_events_total",
    "Count of realtime messages processed by the session coordinator.",
    label_names=("topic", "direction", "action"),
)

realtime_connections = registry.gauge(
    "realtime_active_connections",
    "Number of registered websocket connections.",
    label_names=("scope",),
)

seats_occupied = registry.gauge(
    "seatsync_seats_occupied",
    "Number of seats currently held by a participant.",
)

connection_supersessions_total = registry.counter(
    "seatsync_connection_supersessions_total",
    "Connections closed because the same identity connected again.",
)

seat_evictions_total = registry.counter(
    "seatsync_seat_evictions_total",
    "Participants evicted after their reconnect grace period expired.",
)

protocol_errors_total = registry.counter(
    "seatsync_protocol_errors_total",
    "Frames dropped because they could not be decoded or were not allowed.",
    label_names=("reason",),
)


def reset_realtime_metrics() -> None:
    """Zero every realtime series; used when the coordinator state is reset."""

    for metric in (
        realtime_events_total,
        realtime_connections,
        seats_occupied,
        connection_supersessions_total,
        seat_evictions_total,
        protocol_errors_total,
    ):
        metric.clear()
