"""
mDNS announcement and discovery of hum sync servers.

A server announces ``<server_id>._hum-sync._tcp.local.`` with its id, friendly name
and WebSocket path in the TXT record. Clients browse for that service type and
keep a table of the servers they can see, optionally restricted to one server id.
Both sides accept an existing AsyncZeroconf so that one process running a server
and a client shares a single mDNS socket.
"""

from __future__ import annotations

import asyncio
import logging
import socket
from contextlib import suppress
from dataclasses import dataclass

from zeroconf import ServiceStateChange, Zeroconf
from zeroconf.asyncio import AsyncServiceBrowser, AsyncServiceInfo, AsyncZeroconf

logger = logging.getLogger(__name__)

SERVICE_TYPE = "_hum-sync._tcp.local."
DEFAULT_PATH = "/ws"
RESOLVE_TIMEOUT_MS = 3000


@dataclass(frozen=True, slots=True)
class DiscoveredServer:
    """A hum sync server seen on the local network."""

    service_name: str
    """Full mDNS service name, unique per server."""
    server_id: str
    name: str
    url: str
    """WebSocket URL to pass to HumClient.connect()."""


def build_service_url(host: str, port: int, path: str | None = None) -> str:
    """Construct the WebSocket URL of a server listening on ``host:port``."""
    path = path or DEFAULT_PATH
    if not path.startswith("/"):
        path = "/" + path
    host_fmt = f"[{host}]" if ":" in host else host
    return f"ws://{host_fmt}:{port}{path}"


def _txt(properties: dict[bytes, bytes | None], key: str) -> str | None:
    value = properties.get(key.encode())
    if not isinstance(value, bytes):
        return None
    return value.decode("utf-8", "ignore") or None


def parse_service_info(info: AsyncServiceInfo) -> DiscoveredServer | None:
    """Turn a resolved service into a DiscoveredServer, None if it is incomplete."""
    if info.port is None:
        return None
    addresses = info.parsed_addresses()
    if not addresses:
        return None
    instance = info.name.removesuffix("." + SERVICE_TYPE)
    server_id = _txt(info.properties, "id") or instance
    return DiscoveredServer(
        service_name=info.name,
        server_id=server_id,
        name=_txt(info.properties, "name") or server_id,
        url=build_service_url(addresses[0], info.port, _txt(info.properties, "path")),
    )


class ServiceDiscovery:
    """
    Continuously browses for hum sync servers.

    With ``server_id`` set only that server is tracked, otherwise every server on
    the network is. The most recently announced server wins current_url().
    """

    def __init__(
        self, *, server_id: str | None = None, zeroconf: AsyncZeroconf | None = None
    ) -> None:
        """Initialize the discovery, nothing is sent before start()."""
        self._server_id = server_id
        self._zeroconf = zeroconf
        self._owns_zeroconf = zeroconf is None
        self._browser: AsyncServiceBrowser | None = None
        self._servers: dict[str, DiscoveredServer] = {}
        self._waiters: list[asyncio.Future[DiscoveredServer]] = []
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def servers(self) -> list[DiscoveredServer]:
        """Servers currently visible, oldest announcement first."""
        return list(self._servers.values())

    def matches(self, server: DiscoveredServer) -> bool:
        """Whether ``server`` passes the server id filter."""
        return self._server_id is None or server.server_id == self._server_id

    def current_url(self) -> str | None:
        """Get the URL of the most recently announced server, or None if none is visible."""
        if not self._servers:
            return None
        return next(reversed(self._servers.values())).url

    async def start(self) -> None:
        """Start browsing (keeps running until stop() is called)."""
        if self._zeroconf is None:
            self._zeroconf = AsyncZeroconf()
        try:
            self._browser = AsyncServiceBrowser(
                self._zeroconf.zeroconf, SERVICE_TYPE, handlers=[self._on_state_change]
            )
        except Exception:
            await self.stop()
            raise

    async def wait_for_first_server(self) -> DiscoveredServer:
        """Return a matching server, waiting until one is announced."""
        if self._servers:
            return next(reversed(self._servers.values()))
        waiter: asyncio.Future[DiscoveredServer] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            return await waiter
        finally:
            with suppress(ValueError):
                self._waiters.remove(waiter)

    def update_from_info(self, info: AsyncServiceInfo) -> DiscoveredServer | None:
        """Record a resolved service. Returns the server if it was accepted."""
        server = parse_service_info(info)
        if server is None or not self.matches(server):
            return None
        # Reinsert so the latest announcement is last
        self._servers.pop(server.service_name, None)
        self._servers[server.service_name] = server
        logger.debug("Discovered %s (%s) at %s", server.name, server.server_id, server.url)
        for waiter in self._waiters:
            if not waiter.done():
                waiter.set_result(server)
        return server

    def remove(self, service_name: str) -> None:
        """Forget a server that went offline."""
        if self._servers.pop(service_name, None) is not None:
            logger.info("Server %s went offline", service_name)

    async def stop(self) -> None:
        """Stop browsing and release resources."""
        if self._browser is not None:
            await self._browser.async_cancel()
            self._browser = None
        for task in list(self._tasks):
            task.cancel()
        if self._owns_zeroconf and self._zeroconf is not None:
            await self._zeroconf.async_close()
            self._zeroconf = None

    def _on_state_change(
        self,
        zeroconf: Zeroconf,
        service_type: str,
        name: str,
        state_change: ServiceStateChange,
    ) -> None:
        if state_change is ServiceStateChange.Removed:
            self.remove(name)
            return
        task = asyncio.get_running_loop().create_task(
            self._resolve(zeroconf, service_type, name)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _resolve(self, zeroconf: Zeroconf, service_type: str, name: str) -> None:
        info = AsyncServiceInfo(service_type, name)
        if not await info.async_request(zeroconf, RESOLVE_TIMEOUT_MS):
            logger.debug("Could not resolve %s", name)
            return
        _ = self.update_from_info(info)


def _advertised_addresses(host: str) -> list[str]:
    if host not in ("", "0.0.0.0", "::"):  # noqa: S104
        return [host]
    with suppress(OSError):
        return [socket.gethostbyname(socket.gethostname())]
    return ["127.0.0.1"]


def build_service_info(
    server_id: str, name: str, host: str, port: int, path: str = DEFAULT_PATH
) -> AsyncServiceInfo:
    """Describe a server the way ServiceDiscovery expects to find it."""
    return AsyncServiceInfo(
        SERVICE_TYPE,
        f"{server_id}.{SERVICE_TYPE}",
        port=port,
        parsed_addresses=_advertised_addresses(host),
        properties={"id": server_id, "name": name, "path": path},
    )


class ServiceAdvertiser:
    """Announces a running hum sync server via mDNS."""

    def __init__(
        self,
        server_id: str,
        name: str,
        host: str,
        port: int,
        path: str = DEFAULT_PATH,
        *,
        zeroconf: AsyncZeroconf | None = None,
    ) -> None:
        """Prepare the announcement of ``server_id`` listening on ``host:port``."""
        self._info = build_service_info(server_id, name, host, port, path)
        self._zeroconf = zeroconf
        self._owns_zeroconf = zeroconf is None
        self._registered = False

    async def start(self) -> None:
        """Register the service."""
        if self._zeroconf is None:
            self._zeroconf = AsyncZeroconf()
        try:
            await self._zeroconf.async_register_service(self._info)
        except Exception:
            await self.stop()
            raise
        self._registered = True
        logger.info("Advertising %s via mDNS", self._info.name)

    async def stop(self) -> None:
        """Unregister the service and release resources."""
        if self._zeroconf is None:
            return
        if self._registered:
            await self._zeroconf.async_unregister_service(self._info)
            self._registered = False
        if self._owns_zeroconf:
            await self._zeroconf.async_close()
            self._zeroconf = None
