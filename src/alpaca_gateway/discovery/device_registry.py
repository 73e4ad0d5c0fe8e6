"""
Device registry for tracking Alpaca devices and their connection states.
"""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from ..errors import (
    AlreadyInProgressError,
    DeviceConnectionError,
    GatewayError,
    NotFoundError,
    ValidationError,
)
from .events import Event, EventBus, EventType

logger = logging.getLogger(__name__)


class DeviceStatus(Enum):
    """Device connection status enumeration."""
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTING = "disconnecting"
    ERROR = "error"


_VALID_TRANSITIONS = {
    DeviceStatus.IDLE: {DeviceStatus.CONNECTING},
    DeviceStatus.CONNECTING: {DeviceStatus.CONNECTED, DeviceStatus.ERROR},
    DeviceStatus.CONNECTED: {DeviceStatus.DISCONNECTING},
    DeviceStatus.DISCONNECTING: {DeviceStatus.IDLE, DeviceStatus.ERROR},
    # Recovery lands on the steady state matching isConnected
    DeviceStatus.ERROR: {DeviceStatus.IDLE, DeviceStatus.CONNECTED},
}


def is_valid_transition(current: DeviceStatus, target: DeviceStatus) -> bool:
    return target in _VALID_TRANSITIONS.get(current, set())


# Python attribute name -> wire (camelCase) name
WIRE_NAMES = {
    "id": "id",
    "name": "name",
    "type": "type",
    "ip_address": "ipAddress",
    "port": "port",
    "is_connected": "isConnected",
    "is_connecting": "isConnecting",
    "is_disconnecting": "isDisconnecting",
    "status": "status",
    "properties": "properties",
    "state_history": "stateHistory",
}

# Fields generic updates may change; connection state only moves via connect/disconnect
UPDATABLE_FIELDS = {"name", "type", "ip_address", "port", "properties"}
STATE_FIELDS = {"is_connected", "is_connecting", "is_disconnecting", "status", "state_history"}


def _wire_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return dict(value)
    if isinstance(value, list):
        return list(value)
    return value


@dataclass
class UnifiedDevice:
    """Canonical registry record for one Alpaca device."""
    id: str
    name: str
    type: str
    ip_address: Optional[str] = None
    port: Optional[int] = None
    is_connected: bool = False
    is_connecting: bool = False
    is_disconnecting: bool = False
    status: DeviceStatus = DeviceStatus.IDLE
    properties: Dict[str, Any] = field(default_factory=dict)
    state_history: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def api_base_url(self) -> Optional[str]:
        return self.properties.get("apiBaseUrl")

    @property
    def device_number(self) -> Optional[int]:
        return self.properties.get("deviceNumber")

    def copy(self) -> "UnifiedDevice":
        return replace(
            self,
            properties=dict(self.properties),
            state_history=list(self.state_history),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API responses and events."""
        return {
            wire_name: _wire_value(getattr(self, name))
            for name, wire_name in WIRE_NAMES.items()
        }


class DeviceRegistry:
    """
    Registry for managing Alpaca devices.

    Mutations never await, so observers never see a half-applied change.
    connect_device/disconnect_device await the connector between two
    synchronous state changes; at most one transition runs per device.

    The connector is any object with ``async connect(device)`` and
    ``async disconnect(device)``.
    """

    def __init__(
        self,
        event_bus: EventBus,
        connector: Any = None,
        connect_timeout: Optional[float] = None,
    ):
        self._devices: Dict[str, UnifiedDevice] = {}
        self._transitions: Dict[str, asyncio.Task] = {}
        self._event_bus = event_bus
        self._connector = connector
        self._connect_timeout = connect_timeout

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus

    # ---- queries ----

    def has_device(self, device_id: str) -> bool:
        return device_id in self._devices

    def get_device(self, device_id: str) -> UnifiedDevice:
        """Get a copy of a device record; NotFoundError if unknown."""
        return self._require(device_id).copy()

    def get_all_devices(self) -> List[UnifiedDevice]:
        """Get copies of all device records in insertion order."""
        return [device.copy() for device in self._devices.values()]

    def get_device_stats(self) -> Dict[str, Any]:
        """Get registry statistics."""
        devices = list(self._devices.values())
        by_type: Dict[str, int] = {}
        for device in devices:
            by_type[device.type] = by_type.get(device.type, 0) + 1

        return {
            "total_devices": len(devices),
            "connected_devices": sum(1 for d in devices if d.is_connected),
            "transitioning_devices": sum(1 for d in devices if d.is_connecting or d.is_disconnecting),
            "error_devices": sum(1 for d in devices if d.status == DeviceStatus.ERROR),
            "by_type": by_type,
        }

    # ---- mutations ----

    def add_device(self, device: UnifiedDevice) -> UnifiedDevice:
        """
        Add a device, or merge it into the existing record with the same id.

        Merging keeps the existing connection state and merges properties
        key by key.
        """
        if not device.id:
            raise ValidationError("Device id is required")

        existing = self._devices.get(device.id)
        if existing is not None:
            updates = {
                "name": device.name,
                "type": device.type,
                "ip_address": device.ip_address,
                "port": device.port,
                "properties": {**existing.properties, **device.properties},
            }
            self._apply(existing, updates)
            logger.info(f"Device {device.id} already registered, merged fields")
            return existing.copy()

        stored = replace(
            device,
            is_connected=False,
            is_connecting=False,
            is_disconnecting=False,
            status=DeviceStatus.IDLE,
            properties=dict(device.properties),
            state_history=[],
        )
        self._devices[stored.id] = stored
        logger.info(f"Device added: {stored.id} ({stored.name})")
        self._event_bus.publish(Event.create(EventType.DEVICE_ADDED, stored.to_dict()))
        return stored.copy()

    def update_device(self, device_id: str, updates: Dict[str, Any]) -> UnifiedDevice:
        """Shallow-merge ``updates`` (attribute names) into a device record."""
        device = self._require(device_id)

        updates = dict(updates)
        if "id" in updates:
            if updates.pop("id") != device_id:
                raise ValidationError("Device id cannot be changed")

        state_fields = STATE_FIELDS.intersection(updates)
        if state_fields:
            raise ValidationError(
                f"Connection state fields cannot be updated directly: {', '.join(sorted(state_fields))}"
            )

        unknown = set(updates) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown device field(s): {', '.join(sorted(unknown))}")

        if updates:
            self._apply(device, updates)
        return device.copy()

    def update_device_properties(self, device_id: str, properties: Dict[str, Any]) -> UnifiedDevice:
        """Merge values into a device's properties, one change event per key."""
        device = self._require(device_id)
        self._apply(device, {"properties": {**device.properties, **properties}})

        for key, value in properties.items():
            self._event_bus.publish(
                Event.create(EventType.DEVICE_PROPERTY_CHANGED, device_id, key, value)
            )
        return device.copy()

    def remove_device(self, device_id: str) -> None:
        """Remove a device; the removal event goes out before the record is dropped."""
        device = self._require(device_id)
        self._event_bus.publish(Event.create(EventType.DEVICE_REMOVED, device_id))
        del self._devices[device_id]
        # A pending connector call finishes against the removed record only
        self._transitions.pop(device_id, None)
        logger.info(f"Device removed: {device_id} ({device.name})")

    # ---- connection lifecycle ----

    async def connect_device(self, device_id: str, timeout: Optional[float] = None) -> bool:
        """Connect a device. Returns True once connected."""
        device = self._require(device_id)

        in_flight = self._in_flight(device_id)
        if in_flight is not None:
            if device.is_connecting:
                logger.info(f"Device {device_id} is already connecting, awaiting that attempt")
                return await asyncio.shield(in_flight)
            raise AlreadyInProgressError(f"Device {device_id} is disconnecting")

        self._recover(device)
        if device.is_connected:
            logger.info(f"Device {device_id} is already connected")
            return True

        logger.info(f"Connecting to device {device_id}")
        self._transition(device, DeviceStatus.CONNECTING, is_connecting=True)
        return await self._start_transition(device_id, "connect", timeout)

    async def disconnect_device(self, device_id: str, timeout: Optional[float] = None) -> bool:
        """Disconnect a device. Returns True once disconnected."""
        device = self._require(device_id)

        in_flight = self._in_flight(device_id)
        if in_flight is not None:
            if device.is_disconnecting:
                logger.info(f"Device {device_id} is already disconnecting, awaiting that attempt")
                return await asyncio.shield(in_flight)
            raise AlreadyInProgressError(f"Device {device_id} is connecting")

        self._recover(device)
        if not device.is_connected:
            logger.info(f"Device {device_id} is already disconnected")
            return True

        logger.info(f"Disconnecting from device {device_id}")
        self._transition(device, DeviceStatus.DISCONNECTING, is_disconnecting=True)
        return await self._start_transition(device_id, "disconnect", timeout)

    async def _start_transition(self, device_id: str, action: str, timeout: Optional[float]) -> bool:
        task = asyncio.get_running_loop().create_task(
            self._run_transition(self._devices[device_id], action, timeout)
        )
        self._transitions[device_id] = task
        task.add_done_callback(lambda t: self._transition_done(device_id, t))
        return await asyncio.shield(task)

    async def _run_transition(self, device: UnifiedDevice, action: str, timeout: Optional[float]) -> bool:
        device_id = device.id
        connecting = action == "connect"

        try:
            await self._call_connector(device, action, timeout)
        except DeviceConnectionError as e:
            if self._devices.get(device_id) is device:
                logger.error(f"Error during {action} of device {device_id}: {e.message}")
                flag = "is_connecting" if connecting else "is_disconnecting"
                self._transition(device, DeviceStatus.ERROR, **{flag: False})
                self._event_bus.publish(
                    Event.create(EventType.DEVICE_CONNECTION_ERROR, device_id, e.message)
                )
            raise

        if self._devices.get(device_id) is not device:
            raise NotFoundError(f"Device {device_id} was removed during {action}")

        if connecting:
            self._transition(device, DeviceStatus.CONNECTED, is_connected=True, is_connecting=False)
            self._event_bus.publish(Event.create(EventType.DEVICE_CONNECTED, device_id))
            logger.info(f"Device {device_id} connected")
        else:
            self._transition(device, DeviceStatus.IDLE, is_connected=False, is_disconnecting=False)
            self._event_bus.publish(Event.create(EventType.DEVICE_DISCONNECTED, device_id))
            logger.info(f"Device {device_id} disconnected")
        return True

    async def _call_connector(self, device: UnifiedDevice, action: str, timeout: Optional[float]) -> None:
        if self._connector is None:
            raise DeviceConnectionError(device.id, f"No connector available to {action} device {device.id}")

        timeout = self._connect_timeout if timeout is None else timeout
        side_effect = getattr(self._connector, action)

        try:
            await asyncio.wait_for(side_effect(device.copy()), timeout)
        except asyncio.TimeoutError:
            raise DeviceConnectionError(
                device.id, f"Timed out after {timeout}s trying to {action} device {device.id}"
            )
        except GatewayError as e:
            raise DeviceConnectionError(device.id, f"Failed to {action} device {device.id}: {e.message}") from e
        except Exception as e:
            raise DeviceConnectionError(device.id, f"Failed to {action} device {device.id}: {e}") from e

    def _transition_done(self, device_id: str, task: asyncio.Task) -> None:
        if self._transitions.get(device_id) is task:
            del self._transitions[device_id]
        if not task.cancelled():
            # Mark the outcome as retrieved even if every caller went away
            task.exception()

    def _in_flight(self, device_id: str) -> Optional[asyncio.Task]:
        task = self._transitions.get(device_id)
        if task is None or task.done():
            return None
        return task

    # ---- internals ----

    def _require(self, device_id: str) -> UnifiedDevice:
        device = self._devices.get(device_id)
        if device is None:
            raise NotFoundError(f"Device not found: {device_id}")
        return device

    def _recover(self, device: UnifiedDevice) -> None:
        if device.status == DeviceStatus.ERROR:
            target = DeviceStatus.CONNECTED if device.is_connected else DeviceStatus.IDLE
            self._transition(device, target)

    def _transition(self, device: UnifiedDevice, target: DeviceStatus, **flags: bool) -> None:
        if not is_valid_transition(device.status, target):
            raise ValidationError(
                f"Invalid state transition from {device.status.value} to {target.value}"
            )

        history = device.state_history + [{
            "from": device.status.value,
            "to": target.value,
            "timestamp": datetime.now().isoformat(),
        }]
        self._apply(device, {"status": target, "state_history": history, **flags})

    def _apply(self, device: UnifiedDevice, updates: Dict[str, Any]) -> None:
        for name, value in updates.items():
            setattr(device, name, value)

        wire_updates = {
            WIRE_NAMES[name]: _wire_value(value)
            for name, value in updates.items()
            if name != "state_history"
        }
        self._event_bus.publish(Event.create(EventType.DEVICE_UPDATED, device.id, wire_updates))
