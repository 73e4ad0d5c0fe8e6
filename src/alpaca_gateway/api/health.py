"""
Health API endpoints for the Alpaca gateway.
"""

from fastapi import APIRouter, Request

from .. import __version__
from .deps import get_services

router = APIRouter()


@router.get("/health")
async def health(request: Request):
    """Basic health check endpoint."""
    services = get_services(request)

    return {
        "status": "healthy",
        "service": "alpaca-gateway",
        "version": __version__,
        "discovery_running": services.discoverer.is_running,
        "devices": services.registry.get_device_stats(),
    }


@router.get("/")
async def root(request: Request):
    """Root endpoint with service information."""
    services = get_services(request)
    config = services.config

    return {
        "service": "Alpaca Gateway",
        "version": __version__,
        "description": "Alpaca discovery, proxy and device registry",
        "port": config.port,
        "discovery_port": config.discovery_port,
        "devices": services.registry.get_device_stats(),
        "endpoints": {
            "proxy": "/proxy/{address}/{port}/{path}",
            "discovery": {
                "scan": "/discovery/scan",
                "devices": "/discovery/devices",
                "auto": "/discovery/auto",
                "manual": "/discovery/manual",
                "status": "/discovery/status",
            },
            "devices": "/devices",
            "device_detail": "/devices/{id}",
            "connect": "/devices/{id}/connect",
            "disconnect": "/devices/{id}/disconnect",
            "events": "/devices/events",
        },
    }
