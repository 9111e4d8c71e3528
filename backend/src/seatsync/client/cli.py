"""Command line seat client for joining a session without a browser."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from pathlib import Path
from typing import Any

from .channel import ChannelConfig
from .identity import IdentityStore
from .media import HeadlessMediaPlane
from .reconcile import SeatingView
from .session import SeatClient
from .tokens import DEFAULT_ROOM, TokenClient, TokenRequestError

logger = logging.getLogger(__name__)

DEFAULT_IDENTITY_FILE = Path.home() / ".seatsync" / "identity.json"


def describe_view(view: SeatingView) -> str:
    """Render the seating as one compact line, e.g. ``1:alice* 5:bob[cam] 12:host``."""

    parts = []
    for tile in view.tiles:
        if tile.identity is None:
            continue
        label = f"{tile.slot_number}:{tile.label}"
        if tile.is_self:
            label += "*"
        if tile.show_video:
            label += "[cam]"
        elif tile.camera_enabled:
            label += "[cam-pending]"
        if tile.eliminated:
            label += "[out]"
        parts.append(label)
    return " ".join(parts) or "<empty>"


async def run_client(args: argparse.Namespace) -> int:
    store = IdentityStore(args.identity_file)
    identity = store.load_or_create()
    if args.token_url:
        try:
            grant = await TokenClient(args.token_url).fetch(identity, args.room)
        except TokenRequestError as exc:
            logger.error("could not obtain a media token: %s", exc)
            return 2
        logger.info("media token issued for room %s", grant.room)
    media = HeadlessMediaPlane(identity, camera_available=not args.no_camera_device)
    config = ChannelConfig(
        initial_delay=args.initial_delay,
        max_delay=args.max_delay,
        heartbeat_interval=args.heartbeat_interval,
        heartbeat_timeout=args.heartbeat_timeout,
        open_timeout=args.open_timeout,
    )
    client = SeatClient(
        args.url,
        store,
        media=media,
        config=config,
        auto_select=args.slot is None and not args.no_auto_select,
    )

    last_line: list[str] = []

    def _log_view(view: SeatingView) -> None:
        line = describe_view(view)
        if last_line and last_line[-1] == line:
            return
        last_line[:] = [line]
        logger.info("seats: %s", line)

    client.engine.on_change(_log_view)

    stop = asyncio.Event()

    def _request_stop(*_: Any) -> None:  # pragma: no cover - signal handling
        stop.set()

    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):  # pragma: no cover - platform specific
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(signum, _request_stop)

    await client.start()
    try:
        await client.channel.wait_connected(timeout=args.open_timeout)
    except asyncio.TimeoutError:
        logger.warning("still not connected after %.1fs; continuing to retry", args.open_timeout)

    if args.slot is not None:
        await client.select_slot(args.slot)
    if args.camera:
        await client.set_camera(True)

    async def _watch_supersession() -> None:
        while not client.superseded:
            await asyncio.sleep(0.5)
        logger.warning("this identity connected elsewhere; exiting")
        stop.set()

    watcher = asyncio.create_task(_watch_supersession())
    try:
        if args.duration:
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(stop.wait(), timeout=args.duration)
        else:
            await stop.wait()
    finally:
        watcher.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await watcher
        await client.stop()
    return 3 if client.superseded else 0


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("url", help="Websocket URL, e.g. ws://localhost:8000/ws/session")
    parser.add_argument(
        "--identity-file",
        type=Path,
        default=DEFAULT_IDENTITY_FILE,
        help="JSON file holding this device's participant identity",
    )
    parser.add_argument("--slot", type=int, default=None, help="Seat to request after connecting")
    parser.add_argument(
        "--no-auto-select",
        action="store_true",
        help="Do not take a free seat automatically after connecting",
    )
    parser.add_argument(
        "--token-url",
        default=None,
        help="Credential service base URL; when set a media token is fetched before joining",
    )
    parser.add_argument("--room", default=DEFAULT_ROOM, help="Media room name for the token request")
    parser.add_argument("--camera", action="store_true", help="Turn the camera on after joining")
    parser.add_argument(
        "--no-camera-device",
        action="store_true",
        help="Simulate a missing camera so enabling it fails",
    )
    parser.add_argument(
        "--duration",
        type=float,
        default=None,
        help="Leave after this many seconds (default: run until interrupted)",
    )
    parser.add_argument("--initial-delay", type=float, default=1.0, help="First reconnect delay (seconds)")
    parser.add_argument("--max-delay", type=float, default=30.0, help="Longest reconnect delay (seconds)")
    parser.add_argument(
        "--heartbeat-interval", type=float, default=13.0, help="Seconds between heartbeat pings"
    )
    parser.add_argument(
        "--heartbeat-timeout", type=float, default=10.0, help="Seconds to wait for a heartbeat reply"
    )
    parser.add_argument(
        "--open-timeout",
        type=float,
        default=10.0,
        help="Timeout for establishing the websocket connection",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log verbosity level",
    )
    args = parser.parse_args(argv)
    if args.slot is not None and not 1 <= args.slot <= 12:
        parser.error("--slot must be between 1 and 12")
    return args


def main(argv: list[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
    )

    try:
        return asyncio.run(run_client(args))
    except KeyboardInterrupt:  # pragma: no cover - manual interruption
        logger.warning("interrupted by user")
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
