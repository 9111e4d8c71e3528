from fastapi import APIRouter, HTTPException, status

from app.api.config import router as config_router
from seatsync.realtime.managers import CoordinatorNotRunning, get_coordinator

router = APIRouter()

router.include_router(config_router)


@router.get("/", tags=["root"])
def read_root() -> dict[str, str]:
    return {"message": "Welcome to the SeatSync API"}


@router.get("/session", tags=["session"])
async def read_session() -> dict[str, object]:
    """Return the seating, camera and player snapshots currently broadcast."""

    try:
        return await get_coordinator().snapshot()
    except CoordinatorNotRunning as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Seat coordinator is not running",
        ) from exc
