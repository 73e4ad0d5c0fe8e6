"""
Auto-discovery: scan, resolve, deduplicate and register Alpaca devices.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ..errors import AlreadyInProgressError, GatewayError, ProtocolError
from ..models import DiscoveredServer
from ..utils.network import validate_endpoint
from .broadcast import BroadcastDiscoverer
from .device_registry import DeviceRegistry, UnifiedDevice
from .events import Event, EventType
from .resolver import DeviceResolver, is_device_added

logger = logging.getLogger(__name__)


@dataclass
class DiscoveryReport:
    """Outcome of one discover-and-register run."""
    servers: List[DiscoveredServer] = field(default_factory=list)
    added: List[UnifiedDevice] = field(default_factory=list)
    already_present: int = 0
    failures: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "servers": [server.to_dict() for server in self.servers],
            "added": [device.to_dict() for device in self.added],
            "addedCount": len(self.added),
            "alreadyPresent": self.already_present,
            "failures": self.failures,
        }


class AutoDiscoveryOrchestrator:
    """
    Composes discovery, resolution and registration.

    Usage:
        orchestrator = AutoDiscoveryOrchestrator(discoverer, resolver, registry)
        report = await orchestrator.discover_and_register()
        devices = await orchestrator.add_manual_device("10.0.0.5", 11111)
    """

    def __init__(self, discoverer: BroadcastDiscoverer, resolver: DeviceResolver, registry: DeviceRegistry):
        self.discoverer = discoverer
        self.resolver = resolver
        self.registry = registry
        self.event_bus = registry.event_bus

    async def discover_and_register(self) -> DiscoveryReport:
        """Scan the network and register every newly found device."""
        if self.discoverer.is_scanning:
            raise AlreadyInProgressError("Discovery already in progress")

        self.event_bus.publish(Event.create(EventType.DISCOVERY_STARTED))
        try:
            servers = await self.discoverer.scan()
        except GatewayError as e:
            logger.error(f"Discovery failed: {e.message}")
            self.event_bus.publish(Event.create(EventType.DISCOVERY_ERROR, e.message))
            self.event_bus.publish(Event.create(EventType.DISCOVERY_STOPPED))
            raise

        report = DiscoveryReport(servers=servers)
        results = await asyncio.gather(*(self._resolve_isolated(server) for server in servers))

        candidates: List[UnifiedDevice] = []
        for server, devices, error in results:
            if error is not None:
                report.failures[server.key] = error
            else:
                candidates.extend(devices)

        report.added, report.already_present = self._register(candidates)

        self.event_bus.publish(Event.create(
            EventType.DISCOVERY_COMPLETED, [device.to_dict() for device in candidates]
        ))
        self.event_bus.publish(Event.create(EventType.DISCOVERY_STOPPED))

        logger.info(
            f"Discovery finished: {len(servers)} server(s), {len(report.added)} device(s) added, "
            f"{len(report.failures)} server(s) failed"
        )
        return report

    async def add_manual_device(self, address: str, port: Any, name: Optional[str] = None) -> List[UnifiedDevice]:
        """
        Verify and register the devices of a user-entered server.

        Nothing is registered unless the server answers its management API.
        """
        address, port = validate_endpoint(address, port)
        server = DiscoveredServer(
            address=address,
            port=port,
            server_name=name or "Manual Entry",
            is_manual=True,
        )

        try:
            versions = await self.resolver.client.get_api_versions(address, port)
            if 1 not in versions:
                raise ProtocolError(f"Alpaca server at {server.key} does not support API version 1")
            candidates = await self.resolver.resolve_server(server)
        except GatewayError as e:
            logger.error(f"Error adding manual device {server.key}: {e.message}")
            raise

        if name:
            for candidate in candidates:
                candidate.properties["serverName"] = name

        self.discoverer.remember(server)
        added, _ = self._register(candidates)
        return added

    async def _resolve_isolated(
        self, server: DiscoveredServer
    ) -> Tuple[DiscoveredServer, List[UnifiedDevice], Optional[str]]:
        try:
            return server, await self.resolver.resolve_server(server), None
        except GatewayError as e:
            logger.warning(f"Could not resolve devices on {server.key}: {e.message}")
            return server, [], e.message

    def _register(self, candidates: List[UnifiedDevice]) -> Tuple[List[UnifiedDevice], int]:
        """Add candidates not yet in the registry; one summary event per call."""
        added: List[UnifiedDevice] = []
        already_present = 0

        with self.event_bus.batch():
            for candidate in candidates:
                # Discovery never rewrites a record that is already registered
                if self.registry.has_device(candidate.id) or is_device_added(
                    candidate, self.registry.get_all_devices()
                ):
                    already_present += 1
                    continue

                device = self.registry.add_device(candidate)
                added.append(device)
                self.event_bus.publish(Event.create(EventType.DISCOVERY_DEVICE_FOUND, device.to_dict()))

            if added:
                self.event_bus.publish(Event.create(
                    EventType.DEVICES_AUTO_ADDED, len(added), [device.name for device in added]
                ))

        if added:
            noun = "1 device" if len(added) == 1 else f"{len(added)} devices"
            logger.info(f"{noun} automatically added to workspace")
        return added, already_present
