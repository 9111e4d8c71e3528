"""SeatSync backend application: HTTP and websocket surface of the seat coordinator."""

__all__ = ["app"]


def __getattr__(name: str):
    # Resolved lazily so importing ``app.config`` does not pull in ``app.main``
    # (which imports ``seatsync.realtime``, which itself imports ``app.config``).
    if name == "app":
        from app.main import app

        return app
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
