"""
Alpaca UDP discovery client.

Broadcasts the Alpaca discovery request and collects the unicast JSON replies
sent back by Alpaca servers on the local network.
"""

import asyncio
import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from ..errors import AlreadyInProgressError, NetworkError
from ..models import DiscoveredServer

logger = logging.getLogger(__name__)

ALPACA_DISCOVERY_PORT = 32227
DISCOVERY_PACKET_SIZE = 64
DISCOVERY_MAGIC = b"alpacadiscovery"
DISCOVERY_VERSION = b"1"


def build_discovery_packet() -> bytes:
    """Build the 64-byte request: "alpacadiscovery", version "1", zero padding."""
    return (DISCOVERY_MAGIC + DISCOVERY_VERSION).ljust(DISCOVERY_PACKET_SIZE, b"\x00")


def parse_discovery_reply(data: bytes) -> Optional[Dict[str, Any]]:
    """Decode a reply; None unless it is a JSON object with a numeric AlpacaPort."""
    try:
        payload = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        return None

    if not isinstance(payload, dict):
        return None

    port = payload.get("AlpacaPort")
    if isinstance(port, bool) or not isinstance(port, (int, float)):
        return None
    if isinstance(port, float) and not port.is_integer():
        return None
    if not 0 < port <= 65535:
        return None

    payload["AlpacaPort"] = int(port)
    return payload


class _DiscoveryProtocol(asyncio.DatagramProtocol):
    """Hands every received datagram to the discoverer."""

    def __init__(self, discoverer: "BroadcastDiscoverer"):
        self.discoverer = discoverer

    def datagram_received(self, data: bytes, addr: Tuple[str, int]) -> None:
        self.discoverer.handle_reply(data, addr)

    def error_received(self, exc: Exception) -> None:
        logger.warning(f"Alpaca discovery socket error: {exc}")


class BroadcastDiscoverer:
    """
    Finds Alpaca servers with the UDP discovery protocol.

    Usage:
        discoverer = BroadcastDiscoverer()
        await discoverer.start()     # binds an ephemeral UDP port
        servers = await discoverer.scan()
        ...
        discoverer.close()
    """

    def __init__(
        self,
        discovery_port: int = ALPACA_DISCOVERY_PORT,
        broadcast_address: str = "255.255.255.255",
        window: float = 2.0,
        bind_address: str = "0.0.0.0",
    ):
        self.discovery_port = discovery_port
        self.broadcast_address = broadcast_address
        self.window = window
        self.bind_address = bind_address

        self._servers: Dict[str, DiscoveredServer] = {}
        self._transport: Optional[asyncio.DatagramTransport] = None
        self._scanning = False
        self.last_scan_at: Optional[datetime] = None

    @property
    def is_running(self) -> bool:
        return self._transport is not None and not self._transport.is_closing()

    @property
    def is_scanning(self) -> bool:
        return self._scanning

    @property
    def local_port(self) -> Optional[int]:
        if not self.is_running:
            return None
        return self._transport.get_extra_info("sockname")[1]

    async def start(self) -> None:
        """Bind the receiving socket to an ephemeral port with broadcast enabled."""
        if self.is_running:
            return

        loop = asyncio.get_running_loop()
        try:
            self._transport, _ = await loop.create_datagram_endpoint(
                lambda: _DiscoveryProtocol(self),
                local_addr=(self.bind_address, 0),
                allow_broadcast=True,
            )
        except OSError as e:
            raise NetworkError(f"Could not open Alpaca discovery socket: {e}") from e

        logger.info(f"Alpaca discovery client listening on {self.bind_address}:{self.local_port}")

    def close(self) -> None:
        if self._transport is not None:
            self._transport.close()
            self._transport = None
            logger.info("Alpaca discovery client stopped")

    def broadcast(self) -> None:
        """Send one discovery request."""
        if not self.is_running:
            raise NetworkError("Alpaca discovery client is not running")

        try:
            self._transport.sendto(
                build_discovery_packet(),
                (self.broadcast_address, self.discovery_port),
            )
        except OSError as e:
            raise NetworkError(f"Discovery broadcast failed: {e}") from e

        logger.info(f"Sent discovery broadcast to {self.broadcast_address}:{self.discovery_port}")

    def devices(self) -> List[DiscoveredServer]:
        """Current cache of responding servers."""
        return list(self._servers.values())

    async def scan(self) -> List[DiscoveredServer]:
        """
        Broadcast, then collect replies for the discovery window.

        The responder count is unknown, so collection is best effort: whatever
        has arrived when the window closes is returned.
        """
        if self._scanning:
            raise AlreadyInProgressError("Discovery already in progress")

        self._scanning = True
        try:
            await self.start()
            self.broadcast()
            await asyncio.sleep(self.window)
            self.last_scan_at = datetime.now()
        finally:
            self._scanning = False

        servers = self.devices()
        logger.info(f"Discovery window closed with {len(servers)} server(s) cached")
        return servers

    def handle_reply(self, data: bytes, addr: Tuple[str, int]) -> Optional[DiscoveredServer]:
        """Cache a discovery reply from ``addr``; malformed replies are dropped."""
        payload = parse_discovery_reply(data)
        if payload is None:
            logger.warning(f"Ignoring malformed discovery reply from {addr[0]}:{addr[1]}: {data[:80]!r}")
            return None

        server = DiscoveredServer(
            address=addr[0],
            port=payload["AlpacaPort"],
            discovered_at=datetime.now(),
            metadata=payload,
        )
        if server.key not in self._servers:
            logger.info(f"Discovered Alpaca server at {server.key}")
        self._servers[server.key] = server
        return server

    def remember(self, server: DiscoveredServer) -> None:
        """Record a manually entered server in the cache."""
        self._servers[server.key] = server

    def clear(self) -> None:
        self._servers.clear()
