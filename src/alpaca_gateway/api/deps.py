"""
Request dependencies resolving the app's shared services.
"""

from fastapi import Request

from ..discovery import AutoDiscoveryOrchestrator, BroadcastDiscoverer, DeviceRegistry, EventBus


def get_services(request: Request):
    return request.app.state.services


def get_registry(request: Request) -> DeviceRegistry:
    return get_services(request).registry


def get_event_bus(request: Request) -> EventBus:
    return get_services(request).event_bus


def get_discoverer(request: Request) -> BroadcastDiscoverer:
    return get_services(request).discoverer


def get_orchestrator(request: Request) -> AutoDiscoveryOrchestrator:
    return get_services(request).orchestrator
