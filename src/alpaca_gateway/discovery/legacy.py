"""
Mapping between legacy device field names and the canonical record.

Older UI code sends ``deviceName``/``deviceType``/``address``/``devicePort``
(and sometimes a top-level ``apiBaseUrl``/``deviceNum``). These helpers are
pure functions; the registry stays the only store.
"""

from typing import Any, Dict

from ..errors import ValidationError
from .device_registry import UnifiedDevice, WIRE_NAMES
from .resolver import api_base_url, device_id

LEGACY_FIELDS = {
    "deviceName": "name",
    "deviceType": "type",
    "address": "ip_address",
    "devicePort": "port",
}

_FROM_WIRE = {wire_name: name for name, wire_name in WIRE_NAMES.items()}


def canonical_updates(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Translate legacy or camelCase field names to record attribute names."""
    updates = {}
    for key, value in fields.items():
        name = LEGACY_FIELDS.get(key) or _FROM_WIRE.get(key) or key
        if name == "type" and isinstance(value, str):
            value = value.lower()
        updates[name] = value
    return updates


def device_from_fields(fields: Dict[str, Any]) -> UnifiedDevice:
    """Build a record from canonical or legacy fields."""
    fields = dict(fields)
    properties = dict(fields.pop("properties", None) or {})

    # Legacy records keep these at top level
    if "apiBaseUrl" in fields:
        properties.setdefault("apiBaseUrl", fields.pop("apiBaseUrl"))
    if "deviceNum" in fields:
        properties.setdefault("deviceNumber", fields.pop("deviceNum"))
    if "deviceNumber" in fields:
        properties.setdefault("deviceNumber", fields.pop("deviceNumber"))

    values = canonical_updates(fields)
    device_type = values.get("type")
    address = values.get("ip_address")
    port = values.get("port")
    number = properties.get("deviceNumber")

    if not device_type:
        raise ValidationError("Device type is required")

    try:
        port = int(port) if port is not None else None
        number = int(number) if number is not None else None
    except (TypeError, ValueError):
        raise ValidationError("Device port and number must be integers")

    has_location = address is not None and port is not None and number is not None
    if number is not None:
        properties["deviceNumber"] = number
    if has_location:
        properties.setdefault("apiBaseUrl", api_base_url(address, port, device_type, number))

    url = properties.get("apiBaseUrl")
    if url is not None and not str(url).startswith("/proxy/"):
        raise ValidationError(f"apiBaseUrl must be a /proxy/ path, got {url}")

    record_id = values.get("id")
    if not record_id:
        if not has_location:
            raise ValidationError("Device id, or address, port and device number, are required")
        record_id = device_id(address, port, device_type, number)

    return UnifiedDevice(
        id=record_id,
        name=values.get("name") or (f"{device_type} {number}" if number is not None else device_type),
        type=device_type,
        ip_address=address,
        port=port,
        properties=properties,
    )


def to_legacy(device: UnifiedDevice) -> Dict[str, Any]:
    """Legacy view of a record."""
    return {
        "id": device.id,
        "deviceName": device.name,
        "deviceType": device.type,
        "address": device.ip_address,
        "devicePort": device.port,
        "apiBaseUrl": device.api_base_url,
        "deviceNum": device.device_number,
        "isConnected": device.is_connected,
        "status": device.status.value,
        "properties": dict(device.properties),
    }
