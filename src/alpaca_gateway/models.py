"""
Data models for Alpaca discovery.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass
class DiscoveredServer:
    """One responding (or manually entered) Alpaca server."""
    address: str
    port: int
    server_name: Optional[str] = None
    manufacturer: Optional[str] = None
    manufacturer_version: Optional[str] = None
    location: Optional[str] = None
    discovered_at: datetime = field(default_factory=datetime.now)
    is_manual: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> str:
        return f"{self.address}:{self.port}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API responses (raw discovery payload included)."""
        data = dict(self.metadata)
        data.update({
            "address": self.address,
            "port": self.port,
            "serverName": self.server_name,
            "manufacturer": self.manufacturer,
            "manufacturerVersion": self.manufacturer_version,
            "location": self.location,
            "discoveredAt": self.discovered_at.isoformat(),
            "isManual": self.is_manual,
        })
        return data


@dataclass
class ServerDescription:
    """Value of GET /management/v1/description."""
    server_name: Optional[str] = None
    manufacturer: Optional[str] = None
    manufacturer_version: Optional[str] = None
    location: Optional[str] = None


@dataclass
class DeviceServerDevice:
    """One entry of GET /management/v1/configureddevices."""
    device_type: str
    device_number: int
    name: Optional[str] = None
    unique_id: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or f"{self.device_type} {self.device_number}"
