"""
Alpaca gateway API endpoints.
"""

from .devices import router as devices_router
from .discovery import router as discovery_router
from .proxy import router as proxy_router
from .health import router as health_router

__all__ = ["devices_router", "discovery_router", "proxy_router", "health_router"]
