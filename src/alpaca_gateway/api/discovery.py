"""
Discovery control API endpoints.
"""

import logging
from typing import Optional, Union

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..discovery import AutoDiscoveryOrchestrator, BroadcastDiscoverer

from .deps import get_discoverer, get_orchestrator

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/discovery")


class ManualDeviceRequest(BaseModel):
    address: str
    port: Union[int, str]
    name: Optional[str] = None


@router.post("/scan")
async def trigger_scan(discoverer: BroadcastDiscoverer = Depends(get_discoverer)):
    """
    Send one discovery broadcast and return immediately.

    Replies land in the cache served by GET /discovery/devices.
    """
    await discoverer.start()
    discoverer.broadcast()
    return {"status": "discovery_triggered", "message": "Discovery broadcast sent"}


@router.get("/devices")
async def discovered_devices(discoverer: BroadcastDiscoverer = Depends(get_discoverer)):
    """Servers that have answered a discovery broadcast, plus manual entries."""
    return {"devices": [server.to_dict() for server in discoverer.devices()]}


@router.post("/auto")
async def auto_discover(orchestrator: AutoDiscoveryOrchestrator = Depends(get_orchestrator)):
    """Run a full discovery, resolve every server and register new devices."""
    report = await orchestrator.discover_and_register()
    return report.to_dict()


@router.post("/manual")
async def add_manual_server(
    request: ManualDeviceRequest,
    orchestrator: AutoDiscoveryOrchestrator = Depends(get_orchestrator),
):
    """Verify a server entered by address and register its devices."""
    added = await orchestrator.add_manual_device(request.address, request.port, request.name)
    return {
        "added": [device.to_dict() for device in added],
        "addedCount": len(added),
    }


@router.get("/status")
async def discovery_status(discoverer: BroadcastDiscoverer = Depends(get_discoverer)):
    last_scan = discoverer.last_scan_at
    return {
        "running": discoverer.is_running,
        "scanning": discoverer.is_scanning,
        "localPort": discoverer.local_port,
        "discoveryPort": discoverer.discovery_port,
        "broadcastAddress": discoverer.broadcast_address,
        "window": discoverer.window,
        "lastScanAt": last_scan.isoformat() if last_scan else None,
        "serverCount": len(discoverer.devices()),
    }
