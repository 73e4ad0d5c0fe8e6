"""
Resolves discovered Alpaca servers into registry device records.
"""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Callable, Iterable, List, Optional

from ..alpaca_client import AlpacaManagementClient, proxy_base
from ..config import ALPACA_DEVICE_TYPES
from ..models import DeviceServerDevice, DiscoveredServer
from .device_registry import UnifiedDevice

logger = logging.getLogger(__name__)

DeviceFilter = Callable[[DeviceServerDevice], bool]


def supported_types_filter(device_types: Iterable[str] = ALPACA_DEVICE_TYPES) -> DeviceFilter:
    """Filter keeping only the given (case-insensitive) device types."""
    allowed = {device_type.lower() for device_type in device_types}

    def _is_supported(device: DeviceServerDevice) -> bool:
        return device.device_type in allowed

    return _is_supported


def device_id(address: str, port: int, device_type: str, device_number: int) -> str:
    return f"{address}:{port}:{device_type}:{device_number}"


def api_base_url(address: str, port: int, device_type: str, device_number: int) -> str:
    return f"{proxy_base(address, port)}/api/v1/{device_type}/{device_number}"


def is_device_added(candidate: UnifiedDevice, existing_devices: Iterable[UnifiedDevice]) -> bool:
    """
    Check whether ``candidate`` is already among ``existing_devices``.

    A matching apiBaseUrl is enough. Otherwise type, device number, address
    and port must all match; manually entered devices may not carry an
    apiBaseUrl yet.
    """
    for existing in existing_devices:
        existing_url = existing.api_base_url
        if existing_url and existing_url == candidate.api_base_url:
            return True

        if (
            existing.type == candidate.type
            and existing.device_number == candidate.device_number
            and existing.ip_address == candidate.ip_address
            and existing.port == candidate.port
        ):
            return True

    return False


class DeviceResolver:
    """Turns a discovered server into UnifiedDevice candidates."""

    def __init__(self, client: AlpacaManagementClient, device_filter: Optional[DeviceFilter] = None):
        self.client = client
        self.device_filter = device_filter or supported_types_filter()

    async def describe_server(self, server: DiscoveredServer) -> DiscoveredServer:
        """Return a copy of ``server`` with its management description filled in."""
        description = await self.client.get_description(server.address, server.port)
        return replace(
            server,
            server_name=description.server_name or server.server_name,
            manufacturer=description.manufacturer or server.manufacturer,
            manufacturer_version=description.manufacturer_version or server.manufacturer_version,
            location=description.location or server.location,
        )

    async def resolve_server(self, server: DiscoveredServer) -> List[UnifiedDevice]:
        """
        Query a server's management API and build one record per configured device.

        Either both management calls succeed or the whole server fails; no
        partial list is returned.
        """
        described = await self.describe_server(server)
        configured = await self.client.get_configured_devices(server.address, server.port)

        candidates = []
        for device in configured:
            if not self.device_filter(device):
                logger.info(f"Skipping unsupported {device.device_type} device on {server.key}")
                continue
            candidates.append(self.create_unified_device(described, device))

        logger.info(f"Resolved {len(candidates)} device(s) on {server.key}")
        return candidates

    def create_unified_device(self, server: DiscoveredServer, device: DeviceServerDevice) -> UnifiedDevice:
        return UnifiedDevice(
            id=device_id(server.address, server.port, device.device_type, device.device_number),
            name=device.display_name,
            type=device.device_type,
            ip_address=server.address,
            port=server.port,
            properties={
                "discoveryTime": datetime.now().isoformat(),
                "alpacaPort": server.port,
                "serverName": server.server_name or "Unknown Server",
                "manufacturer": server.manufacturer or "Unknown",
                "version": server.manufacturer_version,
                "location": server.location,
                "isManualEntry": server.is_manual,
                "deviceNumber": device.device_number,
                "uniqueId": device.unique_id,
                "apiBaseUrl": api_base_url(server.address, server.port, device.device_type, device.device_number),
            },
        )
