"""
Device registry API endpoints.
Supports SSE for real-time frontend updates.
"""

import asyncio
import json
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import StreamingResponse

from ..discovery import DeviceRegistry, Event, EventBus
from ..discovery.legacy import canonical_updates, device_from_fields, to_legacy

from .deps import get_event_bus, get_registry

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/devices")

SSE_KEEPALIVE_SECONDS = 30.0


def _sse_frame(payload: Dict[str, Any]) -> str:
    return f"data: {json.dumps(payload, default=str)}\n\n"


@router.get("")
async def list_devices(
    format: Optional[str] = Query(None, description="'legacy' for the old field names"),
    registry: DeviceRegistry = Depends(get_registry),
):
    """List every registered device."""
    devices = registry.get_all_devices()
    if format == "legacy":
        items = [to_legacy(d) for d in devices]
    else:
        items = [d.to_dict() for d in devices]

    return {
        "devices": items,
        "stats": registry.get_device_stats(),
    }


@router.post("")
async def add_device(
    fields: Dict[str, Any] = Body(...),
    registry: DeviceRegistry = Depends(get_registry),
):
    """Add a device from canonical or legacy fields; an existing id is merged."""
    device = registry.add_device(device_from_fields(fields))
    return device.to_dict()


@router.get("/events")
async def device_events_stream(event_bus: EventBus = Depends(get_event_bus)):
    """
    Server-Sent Events endpoint for registry and discovery events.

    Each frame carries {"type", "data", "timestamp", "source"}, where type is
    the event name (deviceAdded, deviceConnected, discoveryCompleted, ...).
    """
    queue: asyncio.Queue = asyncio.Queue()

    def _forward(event: Event) -> None:
        queue.put_nowait(event.to_dict())

    async def event_generator():
        event_bus.add_listener(_forward)
        try:
            # Send initial connection event
            yield _sse_frame({"type": "connected", "data": {"message": "SSE connected"}})

            while True:
                try:
                    payload = await asyncio.wait_for(queue.get(), timeout=SSE_KEEPALIVE_SECONDS)
                    yield _sse_frame(payload)
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
        finally:
            event_bus.remove_listener(_forward)
            logger.debug("SSE client disconnected")

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        }
    )


@router.get("/events/recent")
async def recent_events(
    count: int = Query(50, ge=1, le=1000),
    event_bus: EventBus = Depends(get_event_bus),
):
    return {"events": [event.to_dict() for event in event_bus.get_recent_events(count)]}


@router.get("/{device_id}")
async def get_device(device_id: str, registry: DeviceRegistry = Depends(get_registry)):
    return registry.get_device(device_id).to_dict()


@router.patch("/{device_id}")
async def update_device(
    device_id: str,
    fields: Dict[str, Any] = Body(...),
    registry: DeviceRegistry = Depends(get_registry),
):
    """Update name, type, address, port or properties."""
    device = registry.update_device(device_id, canonical_updates(fields))
    return device.to_dict()


@router.patch("/{device_id}/properties")
async def update_device_properties(
    device_id: str,
    properties: Dict[str, Any] = Body(...),
    registry: DeviceRegistry = Depends(get_registry),
):
    device = registry.update_device_properties(device_id, properties)
    return device.to_dict()


@router.delete("/{device_id}")
async def delete_device(device_id: str, registry: DeviceRegistry = Depends(get_registry)):
    registry.remove_device(device_id)
    logger.info(f"Device {device_id} removed via API")
    return {"status": "success", "message": f"Device {device_id} removed"}


@router.post("/{device_id}/connect")
async def connect_device(device_id: str, registry: DeviceRegistry = Depends(get_registry)):
    """Connect a device; returns once the device reports connected."""
    await registry.connect_device(device_id)
    return {"status": "success", "device": registry.get_device(device_id).to_dict()}


@router.post("/{device_id}/disconnect")
async def disconnect_device(device_id: str, registry: DeviceRegistry = Depends(get_registry)):
    await registry.disconnect_device(device_id)
    return {"status": "success", "device": registry.get_device(device_id).to_dict()}
