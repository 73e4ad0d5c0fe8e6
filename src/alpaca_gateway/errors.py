"""
Error types raised by the Alpaca Gateway.

Every error carries a human-readable ``message``. The HTTP layer turns these
into ``{"error": ..., "message": ...}`` bodies; tracebacks never cross it.
"""


class GatewayError(Exception):
    """Base class for all gateway errors."""

    kind = "Gateway error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.kind, "message": self.message}


class NetworkError(GatewayError):
    """UDP or HTTP transport failure."""

    kind = "Network error"


class ProtocolError(GatewayError):
    """Malformed discovery reply or management API payload."""

    kind = "Protocol error"


class NotFoundError(GatewayError):
    """Unknown device id."""

    kind = "Not found"


class AlreadyInProgressError(GatewayError):
    """Overlapping discovery scan or conflicting device transition."""

    kind = "Already in progress"


class ValidationError(GatewayError):
    """Missing or invalid input."""

    kind = "Validation error"


class DeviceConnectionError(NetworkError):
    """A device connect/disconnect side effect failed or timed out."""

    kind = "Connection error"

    def __init__(self, device_id: str, message: str):
        super().__init__(message)
        self.device_id = device_id
