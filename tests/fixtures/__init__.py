"""
Test fixtures for the Alpaca Gateway.

Usage:
    from tests.fixtures import FakeAlpacaNetwork, FakeConnector
"""

from tests.fixtures.mock_alpaca import (
    FakeAlpacaNetwork,
    FakeAlpacaServer,
    FakeConnector,
    EventRecorder,
    make_device,
)

__all__ = [
    "FakeAlpacaNetwork",
    "FakeAlpacaServer",
    "FakeConnector",
    "EventRecorder",
    "make_device",
]
