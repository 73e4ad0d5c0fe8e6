"""
Shared pytest fixtures for the Alpaca Gateway tests.
"""

import pytest

from alpaca_gateway.discovery import DeviceRegistry, EventBus
from tests.fixtures import EventRecorder, FakeAlpacaNetwork, FakeConnector


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def recorder(event_bus):
    return EventRecorder(event_bus)


@pytest.fixture
def connector():
    return FakeConnector()


@pytest.fixture
def registry(event_bus, connector):
    return DeviceRegistry(event_bus, connector=connector, connect_timeout=1.0)


@pytest.fixture
def alpaca_network():
    """One telescope server at 10.0.0.5:11111."""
    network = FakeAlpacaNetwork()
    network.add("10.0.0.5", 11111)
    return network
