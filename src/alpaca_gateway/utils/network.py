"""
Network utilities for the Alpaca Gateway.
"""

from typing import Any, Tuple

from ..errors import ValidationError


def validate_endpoint(address: Any, port: Any) -> Tuple[str, int]:
    """Normalize a user-supplied address/port pair, raising ValidationError."""
    if not isinstance(address, str) or not address.strip():
        raise ValidationError("Address and port are required")
    address = address.strip()
    if "/" in address or " " in address:
        raise ValidationError(f"Invalid address: {address}")

    if port is None or port == "" or isinstance(port, bool):
        raise ValidationError("Address and port are required")
    try:
        port = int(port)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid port: {port}")
    if not 0 < port <= 65535:
        raise ValidationError(f"Port out of range: {port}")

    return address, port
