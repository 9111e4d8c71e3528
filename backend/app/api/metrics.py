"""Prometheus scrape endpoint for seat coordination metrics."""

from fastapi import APIRouter, Response

from app.monitoring import metrics as _seat_metrics  # noqa: F401  registers the seat series
from app.monitoring.registry import registry

PROMETHEUS_CONTENT_TYPE = "text/plain; version=0.0.4"

router = APIRouter(tags=["metrics"])


@router.get("/metrics", response_class=Response)
def export_metrics() -> Response:
    """Render connection, seat, eviction and protocol error series."""

    return Response(
        content=registry.render(),
        media_type=PROMETHEUS_CONTENT_TYPE,
        headers={"Cache-Control": "no-store"},
    )
