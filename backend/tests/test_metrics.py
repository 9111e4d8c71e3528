from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from app.monitoring.metrics import realtime_events_total, seats_occupied
from app.monitoring.registry import MetricsRegistry


def test_registry_renders_labelled_samples() -> None:
    registry = MetricsRegistry()
    events = registry.counter("demo_events_total", "Demo events", label_names=("topic",))
    events.labels("slots").inc()
    events.labels("slots").inc(2)
    events.labels("cameras").inc()

    rendered = registry.render()

    assert "# TYPE demo_events_total counter" in rendered
    assert 'demo_events_total{topic="cameras"} 1' in rendered
    assert 'demo_events_total{topic="slots"} 3' in rendered


def test_empty_metric_renders_zero_sample() -> None:
    registry = MetricsRegistry()
    registry.gauge("demo_gauge", "Demo gauge")

    assert "demo_gauge 0" in registry.render()


def test_registry_rejects_duplicates_and_bad_labels() -> None:
    registry = MetricsRegistry()
    counter = registry.counter("demo_total", "Demo", label_names=("topic",))

    with pytest.raises(ValueError):
        registry.counter("demo_total", "Again")
    with pytest.raises(ValueError):
        counter.labels("a", "b")
    with pytest.raises(ValueError):
        counter.labels("a").inc(-1)
    with pytest.raises(AttributeError):
        counter.labels("a").set(3)


def test_gauge_tracks_value() -> None:
    registry = MetricsRegistry()
    gauge = registry.gauge("demo_seats", "Seats")

    gauge.set(4)
    gauge.dec()
    gauge.inc(0.5)

    assert gauge.value() == 3.5
    assert "demo_seats 3.5" in registry.render()


def test_metrics_endpoint_reports_seat_activity(client: TestClient) -> None:
    with client.websocket_connect("/ws/session") as connection:
        connection.send_json({"type": "register", "userId": "metrics-user"})
        connection.send_json({"type": "select_slot", "slotNumber": 2})
        for _ in range(10):
            if connection.receive_json()["type"] == "slot_selection_result":
                break

        response = client.get("/metrics")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert "seatsync_seats_occupied 1" in response.text
    assert seats_occupied.value() == 1
    assert realtime_events_total.value("slots", "out", "snapshot") >= 1
