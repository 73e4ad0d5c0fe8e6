"""
Configuration for the Alpaca Gateway.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional

# Standard Alpaca device types (lowercase, as used in /api/v1/{type}/...)
ALPACA_DEVICE_TYPES = [
    "camera",
    "covercalibrator",
    "dome",
    "filterwheel",
    "focuser",
    "observingconditions",
    "rotator",
    "safetymonitor",
    "switch",
    "telescope",
]


def _parse_list(value: Optional[str], default: List[str]) -> List[str]:
    if not value:
        return list(default)
    return [item.strip().lower() for item in value.split(",") if item.strip()]


@dataclass
class GatewayConfig:
    """Alpaca Gateway configuration settings."""

    # Server settings
    host: str = "0.0.0.0"
    port: int = 3000

    # Discovery settings
    discovery_port: int = 32227
    broadcast_address: str = "255.255.255.255"
    discovery_window: float = 2.0  # Seconds replies are collected after a broadcast

    # HTTP settings
    management_timeout: float = 5.0
    proxy_timeout: float = 30.0
    connect_timeout: float = 10.0

    # Device types the resolver keeps
    device_types: List[str] = field(default_factory=lambda: list(ALPACA_DEVICE_TYPES))

    # Logging
    log_level: str = "INFO"
    log_file: str = ""

    @classmethod
    def from_env(cls) -> "GatewayConfig":
        """Load configuration from environment variables."""
        return cls(
            host=os.getenv("GATEWAY_HOST", "0.0.0.0"),
            port=int(os.getenv("GATEWAY_PORT", "3000")),
            discovery_port=int(os.getenv("ALPACA_DISCOVERY_PORT", "32227")),
            broadcast_address=os.getenv("ALPACA_BROADCAST_ADDRESS", "255.255.255.255"),
            discovery_window=float(os.getenv("ALPACA_DISCOVERY_WINDOW", "2.0")),
            management_timeout=float(os.getenv("ALPACA_MANAGEMENT_TIMEOUT", "5.0")),
            proxy_timeout=float(os.getenv("GATEWAY_PROXY_TIMEOUT", "30.0")),
            connect_timeout=float(os.getenv("ALPACA_CONNECT_TIMEOUT", "10.0")),
            device_types=_parse_list(os.getenv("ALPACA_DEVICE_TYPES"), ALPACA_DEVICE_TYPES),
            log_level=os.getenv("GATEWAY_LOG_LEVEL", "INFO"),
            log_file=os.getenv("GATEWAY_LOG_FILE", ""),
        )


# Global config instance
_config: Optional[GatewayConfig] = None


def get_config() -> GatewayConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = GatewayConfig.from_env()
    return _config


def set_config(config: GatewayConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
