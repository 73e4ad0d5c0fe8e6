"""
Alpaca Gateway - discovery, proxy and device registry for ASCOM Alpaca devices.

This service handles:
- UDP broadcast discovery of Alpaca servers
- Same-origin HTTP proxy to any Alpaca server
- Device resolution, registry and connection lifecycle
- Event stream for UI clients
"""

__version__ = "1.0.0"

from .main import main, app, create_app

__all__ = ["main", "app", "create_app", "__version__"]
