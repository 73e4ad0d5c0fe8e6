"""
Discovery module - handles Alpaca discovery, resolution and the device registry.
"""

from .events import EventType, Event, EventBus, EventBatch
from .device_registry import UnifiedDevice, DeviceStatus, DeviceRegistry
from .broadcast import BroadcastDiscoverer, build_discovery_packet
from .resolver import DeviceResolver, is_device_added, supported_types_filter
from .orchestrator import AutoDiscoveryOrchestrator, DiscoveryReport

__all__ = [
    "EventType", "Event", "EventBus", "EventBatch",
    "UnifiedDevice", "DeviceStatus", "DeviceRegistry",
    "BroadcastDiscoverer", "build_discovery_packet",
    "DeviceResolver", "is_device_added", "supported_types_filter",
    "AutoDiscoveryOrchestrator", "DiscoveryReport",
]
