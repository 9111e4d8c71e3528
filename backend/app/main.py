import logging
import logging.config

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.metrics import router as metrics_router
from app.api.routes import router as api_router
from app.api.ws import router as ws_router
from app.config import get_settings
from seatsync.realtime.managers import get_coordinator, shutdown_realtime, startup_realtime


settings = get_settings()

LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
        }
    },
    "handlers": {
        "default": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
        }
    },
    "root": {
        "handlers": ["default"],
        "level": settings.log_level,
    },
    "loggers": {
        # Seat coordination and the websocket layer log through one handler.
        logger_name: {
            "handlers": ["default"],
            "level": settings.log_level,
            "propagate": False,
        }
        for logger_name in ("seatsync.realtime", "app.api")
    },
}


logging.config.dictConfig(LOGGING_CONFIG)

logger = logging.getLogger(__name__)

app = FastAPI(title=settings.app_name, debug=settings.debug)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[str(origin) for origin in settings.cors_origins],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    allow_origin_regex=settings.cors_allow_origin_regex,
)


@app.get("/health", tags=["system"])
def health_check() -> dict[str, object]:
    """Report whether the seat coordinator is accepting work."""

    running = get_coordinator().running
    return {
        "status": "ok" if running else "starting",
        "environment": settings.environment,
        "seatCount": settings.seat_count,
    }


@app.on_event("startup")
async def _startup() -> None:
    await startup_realtime()
    logger.info(
        "Seat coordinator started",
        extra={
            "seat_count": settings.seat_count,
            "host_seat": settings.host_seat,
            "grace_seconds": settings.seat_grace_period_seconds,
        },
    )


@app.on_event("shutdown")
async def _shutdown() -> None:
    await shutdown_realtime()
    logger.info("Seat coordinator stopped")


app.include_router(api_router, prefix="/api")
app.include_router(ws_router)
app.include_router(metrics_router)
