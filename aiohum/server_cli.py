"""Command-line interface for running a hum sync server."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from collections.abc import Sequence

from aiohttp import web

from aiohum.discovery import ServiceAdvertiser
from aiohum.server import HumServer, RoomEvent, ServerConfig

logger = logging.getLogger(__name__)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the hum sync server."""
    parser = argparse.ArgumentParser(description="Run a hum sync server")
    parser.add_argument("--host", default=None, help="Interface to listen on")
    parser.add_argument(
        "--port", type=int, default=None, help="Port to listen on (default: $PORT or 3001)"
    )
    parser.add_argument("--path", dest="ws_path", default=None, help="WebSocket endpoint path")
    parser.add_argument("--id", dest="server_id", default=None, help="Server identifier")
    parser.add_argument("--name", dest="server_name", default=None, help="Friendly server name")
    parser.add_argument(
        "--grace-period",
        type=float,
        default=None,
        help="Seconds an empty room is kept before it is deleted",
    )
    parser.add_argument(
        "--allowed-origin",
        dest="allowed_origins",
        action="append",
        default=None,
        help="Origin allowed to call the HTTP status routes (repeatable)",
    )
    parser.add_argument(
        "--no-advertise",
        dest="advertise",
        action="store_false",
        default=None,
        help="Do not announce the server via mDNS",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level to use",
    )
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> ServerConfig:
    """Merge parsed arguments over the environment defaults."""
    return ServerConfig.from_env(
        host=args.host,
        port=args.port,
        ws_path=args.ws_path,
        server_id=args.server_id,
        server_name=args.server_name,
        grace_period=args.grace_period,
        allowed_origins=tuple(args.allowed_origins) if args.allowed_origins else None,
        advertise=args.advertise,
    )


async def _log_event(event: RoomEvent) -> None:
    logger.debug("Server event: %s", event)


async def main_async(argv: Sequence[str] | None = None) -> int:
    """Entry point executing the asynchronous server workflow."""
    args = parse_args(list(argv) if argv is not None else None)
    logging.basicConfig(level=getattr(logging, args.log_level))
    try:
        config = build_config(args)
    except ValueError as err:
        logger.error("Invalid configuration: %s", err)
        return 2

    loop = asyncio.get_running_loop()
    server = HumServer(
        loop, config.server_id, config.server_name, grace_period=config.grace_period
    )
    server.add_event_listener(_log_event)
    app = server.create_app(ws_path=config.ws_path, allowed_origins=config.allowed_origins)

    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, config.host, config.port)
    await site.start()
    logger.info(
        "%s listening on %s:%d%s", config.server_name, config.host, config.port, config.ws_path
    )

    advertiser: ServiceAdvertiser | None = None
    if config.advertise:
        advertiser = ServiceAdvertiser(
            config.server_id, config.server_name, config.host, config.port, config.ws_path
        )
        try:
            await advertiser.start()
        except Exception:
            logger.exception("Failed to advertise server via mDNS, continuing without")
            advertiser = None

    stop_event = asyncio.Event()
    loop.add_signal_handler(signal.SIGINT, stop_event.set)
    loop.add_signal_handler(signal.SIGTERM, stop_event.set)
    try:
        await stop_event.wait()
    finally:
        logger.info("Shutting down")
        loop.remove_signal_handler(signal.SIGINT)
        loop.remove_signal_handler(signal.SIGTERM)
        if advertiser is not None:
            await advertiser.stop()
        await runner.cleanup()
    return 0


def main() -> int:
    """Run the server CLI."""
    return asyncio.run(main_async(sys.argv[1:]))


if __name__ == "__main__":  # pragma: no cover - CLI entry
    raise SystemExit(main())
