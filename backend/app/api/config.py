"""Configuration endpoints for exposing runtime options to clients."""

from __future__ import annotations

from fastapi import APIRouter, Request

from app.config import get_settings

router = APIRouter(prefix="/config", tags=["config"])

SESSION_WS_PATH = "/ws/session"


def _is_secure_request(request: Request) -> bool:
    forwarded_proto = request.headers.get("x-forwarded-proto", "").split(",")[0].strip()
    if forwarded_proto:
        return forwarded_proto.lower() == "https"

    return request.url.scheme == "https"


def _session_ws_url(request: Request) -> str:
    """Build the externally visible websocket URL, honouring proxy headers."""

    host = request.headers.get("x-forwarded-host") or request.headers.get("host") or request.url.netloc
    host = host.split(",")[0].strip()
    scheme = "wss" if _is_secure_request(request) else "ws"
    return f"{scheme}://{host}{SESSION_WS_PATH}"


@router.get("/session")
def read_session_config(request: Request) -> dict[str, object]:
    """Expose seat layout and timing knobs clients need to behave consistently."""

    settings = get_settings()
    return {
        "wsUrl": _session_ws_url(request),
        "seatCount": settings.seat_count,
        "hostSeat": settings.host_seat,
        "gracePeriodSeconds": settings.seat_grace_period_seconds,
        "cameraBroadcastWindowSeconds": settings.camera_broadcast_window_seconds,
        "keepalive": {
            "pingIntervalSeconds": settings.websocket_keepalive_ping_interval_seconds,
            "idleLimitSeconds": settings.websocket_idle_limit_seconds,
        },
    }
