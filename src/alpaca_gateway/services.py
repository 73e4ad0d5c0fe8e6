"""
Service container: every long-lived component, constructed once per app.
"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import httpx

from .alpaca_client import AlpacaDeviceConnector, AlpacaManagementClient
from .config import GatewayConfig
from .discovery import (
    AutoDiscoveryOrchestrator,
    BroadcastDiscoverer,
    DeviceRegistry,
    DeviceResolver,
    EventBus,
    supported_types_filter,
)
from .proxy_gateway import ProxyGateway

logger = logging.getLogger(__name__)

ASGIApp = Callable[..., Awaitable[Any]]

# Host for in-process requests; never resolved
INTERNAL_BASE_URL = "http://alpaca-gateway"


@dataclass
class GatewayServices:
    """Components shared by the API routes."""
    config: GatewayConfig
    event_bus: EventBus
    registry: DeviceRegistry
    discoverer: BroadcastDiscoverer
    resolver: DeviceResolver
    orchestrator: AutoDiscoveryOrchestrator
    proxy: ProxyGateway
    http: httpx.AsyncClient

    async def start(self) -> None:
        await self.discoverer.start()

    async def close(self) -> None:
        self.discoverer.close()
        await self.http.aclose()
        await self.proxy.aclose()


def build_services(
    config: GatewayConfig,
    app: ASGIApp,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> GatewayServices:
    """
    Wire the gateway components together.

    Management and device calls are sent in-process to ``app``'s own proxy
    routes, so they take the same path as browser traffic whatever port the
    app is served on. ``transport`` replaces the network for the proxy
    upstream (used by tests).
    """
    event_bus = EventBus()

    # One client for management and device calls; both go through /proxy
    http = httpx.AsyncClient(
        base_url=INTERNAL_BASE_URL,
        transport=httpx.ASGITransport(app=app),
    )

    registry = DeviceRegistry(
        event_bus,
        connector=AlpacaDeviceConnector(http, timeout=config.management_timeout),
        connect_timeout=config.connect_timeout,
    )
    discoverer = BroadcastDiscoverer(
        discovery_port=config.discovery_port,
        broadcast_address=config.broadcast_address,
        window=config.discovery_window,
    )
    resolver = DeviceResolver(
        AlpacaManagementClient(http, timeout=config.management_timeout),
        device_filter=supported_types_filter(config.device_types),
    )
    orchestrator = AutoDiscoveryOrchestrator(discoverer, resolver, registry)
    proxy = ProxyGateway(timeout=config.proxy_timeout, transport=transport)

    logger.debug("Gateway services built (management calls via in-process /proxy routes)")
    return GatewayServices(
        config=config,
        event_bus=event_bus,
        registry=registry,
        discoverer=discoverer,
        resolver=resolver,
        orchestrator=orchestrator,
        proxy=proxy,
        http=http,
    )
