from functools import lru_cache
from pathlib import Path
from typing import Annotated, List

from pydantic import AnyHttpUrl, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    app_name: str = Field(default="SeatSync API", description="Human readable service name")
    environment: str = Field(default="development", description="Deployment environment name")
    debug: bool = Field(default=True, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root logging level")

    cors_origins: Annotated[List[AnyHttpUrl], NoDecode] = Field(
        default_factory=lambda: [
            "http://localhost",
            "http://localhost:3000",
            "http://localhost:8080",
            "http://127.0.0.1",
            "http://127.0.0.1:8080",
        ],
        description="List of allowed CORS origins",
    )

    cors_allow_origin_regex: str | None = Field(
        default=r"^https?://(localhost|127\.0\.0\.1|0\.0\.0\.0|\[::1\]|(\d{1,3}\.){3}\d{1,3})(:\d+)?$",
        description="Optional regular expression that matches allowed CORS origins",
    )

    websocket_keepalive_timeout_seconds: float = Field(
        default=5.0,
        description="How long the server waits for a frame before considering a keepalive ping.",
    )
    websocket_keepalive_ping_interval_seconds: float = Field(
        default=5.0,
        description="Minimum idle time between server keepalive pings.",
    )
    websocket_idle_limit_seconds: float = Field(
        default=15.0,
        description="Close a socket that has sent nothing for this long. Zero disables the limit.",
    )

    seat_count: int = Field(default=12, ge=1, description="Number of seats in a session")
    host_seat: int = Field(default=12, ge=1, description="Seat reserved for the host")
    seat_grace_period_seconds: float = Field(
        default=5.0,
        ge=0,
        description="How long a disconnected participant keeps its seat and camera state.",
    )
    camera_broadcast_window_seconds: float = Field(
        default=0.15,
        ge=0,
        description="Camera state changes inside this window are sent as one snapshot.",
    )
    slot_broadcast_window_seconds: float = Field(
        default=0.0,
        ge=0,
        description="Coalescing window for seating snapshots; zero broadcasts immediately.",
    )

    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).resolve().parents[2] / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v):  # type: ignore[override]
        if v in (None, "", Ellipsis):
            return v
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        if isinstance(v, (list, tuple, set)):
            return list(v)
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def normalise_log_level(cls, value: str) -> str:
        return str(value).strip().upper() or "INFO"

    @field_validator("host_seat")
    @classmethod
    def host_seat_within_table(cls, value: int, info) -> int:  # type: ignore[no-untyped-def]
        seat_count = info.data.get("seat_count")
        if seat_count is not None and value > seat_count:
            raise ValueError("host_seat must not exceed seat_count")
        return value


@lru_cache
def get_settings() -> Settings:
    return Settings()
