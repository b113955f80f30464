"""Command-line interface for joining a hum room."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from collections.abc import Sequence

import aioconsole
from aiohttp import ClientError

from aiohum.client import HeadlessMediaEngine, HumClient, RoomSession
from aiohum.discovery import ServiceDiscovery
from aiohum.models.chat import ReceiveMessagePayload
from aiohum.models.room import ReceiveStatePayload, UserCountUpdatePayload

logger = logging.getLogger(__name__)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the hum client."""
    parser = argparse.ArgumentParser(description="Join a hum room from the terminal")
    parser.add_argument(
        "--url",
        default=None,
        help="WebSocket URL of the hum sync server. If omitted, discover via mDNS.",
    )
    parser.add_argument(
        "--server-id",
        default=None,
        help="Only connect to the discovered server announcing this id",
    )
    parser.add_argument("--room", required=True, help="Room to join")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level to use",
    )
    return parser.parse_args(argv)


async def _sleep_interruptible(duration: float, keyboard_task: asyncio.Task[None]) -> bool:
    """Sleep with keyboard interrupt support. Return True if interrupted."""
    remaining = duration
    while remaining > 0 and not keyboard_task.done():
        await asyncio.sleep(min(0.5, remaining))
        remaining -= 0.5
    return keyboard_task.done()


async def _wait_for_server_reappear(
    discovery: ServiceDiscovery, keyboard_task: asyncio.Task[None]
) -> str | None:
    """
    Wait for the server to reappear on the network.

    Returns the new URL if the server reappears, None if interrupted.
    """
    logger.info("Server offline, waiting for rediscovery...")
    _print_event("Waiting for server...")
    while not (new_url := discovery.current_url()) and not keyboard_task.done():  # noqa: ASYNC110
        await asyncio.sleep(1.0)
    return new_url


async def _connection_loop(
    client: HumClient,
    session: RoomSession,
    discovery: ServiceDiscovery,
    room_id: str,
    initial_url: str,
    keyboard_task: asyncio.Task[None],
) -> None:
    """
    Keep the client connected and in ``room_id`` until the keyboard loop ends.

    The room is joined again after every reconnect. Network errors back off
    exponentially up to five minutes, a server rediscovered under a new URL is
    retried immediately.
    """
    url = initial_url
    last_attempted_url = url
    error_backoff = 1.0
    max_backoff = 300.0

    while not keyboard_task.done():
        try:
            await client.connect(url)
            session.join(room_id)
            _print_event(f"Connected to {url}, joined room {room_id}")
            error_backoff = 1.0
            last_attempted_url = url

            while client.connected and not keyboard_task.done():  # noqa: ASYNC110
                await asyncio.sleep(0.5)
            if keyboard_task.done():
                break

            _print_event("Connection lost")
            new_url = discovery.current_url()
            if not new_url:
                new_url = await _wait_for_server_reappear(discovery, keyboard_task)
                if keyboard_task.done():
                    break
            if new_url:
                url = new_url
            _print_event(f"Reconnecting to {url}...")
        except (TimeoutError, OSError, ClientError) as e:
            logger.debug(
                "Connection error (%s), retrying in %.0fs", type(e).__name__, error_backoff
            )
            _print_event(f"Connection error, retrying in {error_backoff:.0f}s...")
            if await _sleep_interruptible(error_backoff, keyboard_task):
                break
            current_url = discovery.current_url()
            if current_url and current_url != last_attempted_url:
                logger.info("Server URL changed to %s, reconnecting immediately", current_url)
                url = last_attempted_url = current_url
                error_backoff = 1.0
            else:
                error_backoff = min(error_backoff * 2, max_backoff)
        except Exception:
            logger.exception("Unexpected error during connection")
            _print_event("Unexpected error occurred")
            await asyncio.sleep(error_backoff)
            error_backoff = min(error_backoff * 2, max_backoff)


async def main_async(argv: Sequence[str] | None = None) -> int:
    """Entry point executing the asynchronous CLI workflow."""
    args = parse_args(list(argv) if argv is not None else None)
    logging.basicConfig(level=getattr(logging, args.log_level))

    loop = asyncio.get_running_loop()
    client = HumClient()
    engine = HeadlessMediaEngine()
    session = RoomSession(client, engine)

    def on_state(payload: ReceiveStatePayload) -> None:
        # The headless engine has nothing to buffer, finish loading right away
        if not engine.ready:
            loop.call_soon(engine.mark_ready)
        _print_state(session, payload)

    def on_user_count(payload: UserCountUpdatePayload) -> None:
        _print_event(f"{payload.count} listening in {payload.room_id}")

    def on_message(payload: ReceiveMessagePayload) -> None:
        _print_event(f"[{payload.sender_id}] {payload.message}")

    client.add_state_listener(on_state)
    client.add_user_count_listener(on_user_count)
    client.add_message_listener(on_message)

    discovery = ServiceDiscovery(server_id=args.server_id)
    await discovery.start()

    try:
        url = args.url
        if url is None:
            logger.info("Waiting for mDNS discovery of hum sync server...")
            _print_event("Searching for hum sync server...")
            try:
                found = await discovery.wait_for_first_server()
                url = found.url
                _print_event(f"Found {found.name} at {url}")
            except Exception:
                logger.exception("Failed to discover server")
                return 1

        _print_instructions()
        keyboard_task = asyncio.create_task(_keyboard_loop(client, session))

        def signal_handler() -> None:
            logger.debug("Received interrupt signal, shutting down...")
            keyboard_task.cancel()

        loop.add_signal_handler(signal.SIGINT, signal_handler)

        try:
            await _connection_loop(client, session, discovery, args.room, url, keyboard_task)
        except asyncio.CancelledError:  # pragma: no cover - cancellation path
            logger.debug("Connection loop cancelled")
        finally:
            loop.remove_signal_handler(signal.SIGINT)
            session.close()
            await client.disconnect()
    finally:
        await discovery.stop()

    return 0


async def _keyboard_loop(client: HumClient, session: RoomSession) -> None:
    reconciler = session.reconciler
    try:
        while True:
            try:
                line = await aioconsole.ainput()
            except EOFError:
                break
            raw_line = line.strip()
            if not raw_line:
                continue
            parts = raw_line.split(maxsplit=1)
            keyword = parts[0].lower()
            argument = parts[1] if len(parts) > 1 else ""
            if keyword in {"quit", "exit", "q"}:
                break
            if not client.connected:
                _print_event("Not connected")
                continue
            if keyword in {"play", "p"}:
                _ = reconciler.play()
            elif keyword == "pause":
                _ = reconciler.pause()
            elif keyword in {"toggle", "space"}:
                _ = reconciler.toggle()
            elif keyword == "seek":
                _handle_seek(session, argument)
            elif keyword == "load":
                _handle_load(session, argument)
            elif keyword in {"next", "n"}:
                if not reconciler.next_track():
                    _print_event("No next track")
            elif keyword in {"previous", "prev", "b"}:
                if not reconciler.previous_track():
                    _print_event("No previous track")
            elif keyword == "say":
                if not session.say(argument):
                    _print_event("Usage: say <message>")
            elif keyword == "status":
                _print_event(_describe(session))
            else:
                _print_event("Unknown command")
    except asyncio.CancelledError:
        logger.debug("Keyboard loop cancelled, exiting gracefully")
        raise


def _handle_seek(session: RoomSession, argument: str) -> None:
    try:
        position = float(argument)
    except ValueError:
        _print_event("Usage: seek <seconds>")
        return
    if position < 0:
        _print_event("Position must not be negative")
        return
    _ = session.reconciler.seek(position)


def _handle_load(session: RoomSession, argument: str) -> None:
    video_id, _sep, title = argument.partition(" ")
    if not video_id:
        _print_event("Usage: load <video_id> [title]")
        return
    _ = session.reconciler.select_track(video_id, title.strip() or None)


def _describe(session: RoomSession) -> str:
    reconciler = session.reconciler
    lines = [f"Room: {session.room_id or '-'} ({session.user_count} listening)"]
    if reconciler.video_id:
        label = reconciler.title or reconciler.video_id
        if reconciler.channel:
            label += f" - {reconciler.channel}"
        lines.append(f"Now playing: {label}")
    lines.append(f"State: {'playing' if reconciler.is_playing else 'paused'}")
    lines.append(f"Position: {reconciler.position():.1f} s")
    return "\n".join(lines)


def _print_state(session: RoomSession, payload: ReceiveStatePayload) -> None:
    title = payload.title or payload.video_id or "nothing"
    state = "playing" if payload.is_playing else "paused"
    _print_event(f"{title}: {state} at {payload.current_seconds:.1f} s")


def _print_event(message: str) -> None:
    print(message, flush=True)  # noqa: T201


def _print_instructions() -> None:
    print(  # noqa: T201
        (
            "Commands: play(p), pause, toggle, seek <s>, load <id> [title], next(n), prev(b), "
            "say <text>, status, quit(q)"
        ),
        flush=True,
    )


def main() -> int:
    """Run the CLI client."""
    return asyncio.run(main_async(sys.argv[1:]))


if __name__ == "__main__":  # pragma: no cover - CLI entry
    raise SystemExit(main())
