"""
Unit tests for the auto-discovery orchestrator.
"""

from unittest.mock import AsyncMock, Mock

import pytest

from alpaca_gateway.alpaca_client import AlpacaManagementClient
from alpaca_gateway.discovery import AutoDiscoveryOrchestrator, DeviceResolver
from alpaca_gateway.discovery.legacy import device_from_fields
from alpaca_gateway.errors import (
    AlreadyInProgressError,
    NetworkError,
    ProtocolError,
    ValidationError,
)
from alpaca_gateway.models import DiscoveredServer
from tests.fixtures import FakeAlpacaServer


class StubDiscoverer:
    """Discoverer returning a fixed server list."""

    def __init__(self, servers=None, error=None):
        self.servers = list(servers or [])
        self.error = error
        self.is_scanning = False
        self.remembered = []

    async def scan(self):
        if self.error is not None:
            raise self.error
        return list(self.servers)

    def remember(self, server):
        self.remembered.append(server)


@pytest.fixture
def make_orchestrator(registry, alpaca_network):
    def _make(discoverer=None):
        resolver = DeviceResolver(AlpacaManagementClient(alpaca_network.client()))
        return AutoDiscoveryOrchestrator(discoverer or StubDiscoverer(), resolver, registry)

    return _make


# =============================================================================
# Manual entry
# =============================================================================

class TestManualDevice:
    """Tests for add_manual_device."""

    @pytest.mark.asyncio
    async def test_add_manual_device(self, make_orchestrator, registry, recorder):
        discoverer = StubDiscoverer()
        orchestrator = make_orchestrator(discoverer)

        added = await orchestrator.add_manual_device("10.0.0.5", 11111)

        assert [d.id for d in added] == ["10.0.0.5:11111:telescope:0"]
        device = registry.get_device("10.0.0.5:11111:telescope:0")
        assert device.properties["apiBaseUrl"] == "/proxy/10.0.0.5/11111/api/v1/telescope/0"
        assert device.properties["isManualEntry"] is True

        summaries = recorder.of("devicesAutoAdded")
        assert len(summaries) == 1
        assert summaries[0].as_args() == (1, ["Test Telescope"])
        assert [s.key for s in discoverer.remembered] == ["10.0.0.5:11111"]

    @pytest.mark.asyncio
    async def test_second_add_is_deduplicated(self, make_orchestrator, registry, recorder):
        orchestrator = make_orchestrator()

        await orchestrator.add_manual_device("10.0.0.5", 11111)
        again = await orchestrator.add_manual_device("10.0.0.5", "11111")

        assert again == []
        assert len(registry.get_all_devices()) == 1
        assert len(recorder.of("devicesAutoAdded")) == 1

    @pytest.mark.asyncio
    async def test_record_with_same_id_is_not_overwritten(self, make_orchestrator, registry, recorder):
        registry.add_device(device_from_fields({
            "id": "10.0.0.5:11111:telescope:0",
            "name": "My scope",
            "type": "telescope",
        }))

        added = await make_orchestrator().add_manual_device("10.0.0.5", 11111)

        assert added == []
        device = registry.get_device("10.0.0.5:11111:telescope:0")
        assert device.name == "My scope"
        assert device.ip_address is None
        assert recorder.of("devicesAutoAdded") == []

    @pytest.mark.asyncio
    async def test_name_overrides_server_name(self, make_orchestrator, registry):
        discoverer = StubDiscoverer()
        orchestrator = make_orchestrator(discoverer)

        added = await orchestrator.add_manual_device("10.0.0.5", 11111, name="Pier Scope")

        assert added[0].properties["serverName"] == "Pier Scope"
        assert discoverer.remembered[0].server_name == "Pier Scope"

    @pytest.mark.asyncio
    async def test_unreachable_server_adds_nothing(self, make_orchestrator, registry, recorder):
        orchestrator = make_orchestrator()

        with pytest.raises(NetworkError):
            await orchestrator.add_manual_device("10.0.0.9", 11111)

        assert registry.get_all_devices() == []
        assert recorder.of("deviceAdded") == []

    @pytest.mark.asyncio
    async def test_requires_api_version_1(self, make_orchestrator, alpaca_network, registry):
        alpaca_network.add("10.0.0.6", 11111, FakeAlpacaServer(api_versions=(2,)))
        orchestrator = make_orchestrator()

        with pytest.raises(ProtocolError):
            await orchestrator.add_manual_device("10.0.0.6", 11111)
        assert registry.get_all_devices() == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("address,port", [
        ("", 11111),
        ("10.0.0.5", None),
        ("10.0.0.5", "abc"),
        ("10.0.0.5", 0),
        ("10.0.0.5", 70000),
    ])
    async def test_invalid_input(self, make_orchestrator, address, port):
        with pytest.raises(ValidationError):
            await make_orchestrator().add_manual_device(address, port)


# =============================================================================
# Full discovery
# =============================================================================

class TestDiscoverAndRegister:
    """Tests for discover_and_register."""

    @pytest.mark.asyncio
    async def test_failing_server_is_isolated(self, make_orchestrator, alpaca_network, registry, recorder):
        alpaca_network.add("10.0.0.6", 4567, FakeAlpacaServer(devices=[
            {"DeviceType": "Camera", "DeviceNumber": 0},
            {"DeviceType": "FilterWheel", "DeviceNumber": 0},
        ]))
        discoverer = StubDiscoverer([
            DiscoveredServer("10.0.0.5", 11111),
            DiscoveredServer("10.0.0.6", 4567),
            DiscoveredServer("10.0.0.9", 11111),
        ])

        report = await make_orchestrator(discoverer).discover_and_register()

        assert len(report.added) == 3
        assert list(report.failures) == ["10.0.0.9:11111"]
        assert len(registry.get_all_devices()) == 3

        assert recorder.names[0] == "discoveryStarted"
        assert recorder.names[-2:] == ["discoveryCompleted", "discoveryStopped"]
        summaries = recorder.of("devicesAutoAdded")
        assert len(summaries) == 1
        assert summaries[0].data["count"] == 3
        assert len(recorder.of("discoveryDeviceFound")) == 3

    @pytest.mark.asyncio
    async def test_rerun_adds_nothing(self, make_orchestrator, registry, recorder):
        orchestrator = make_orchestrator(StubDiscoverer([DiscoveredServer("10.0.0.5", 11111)]))

        await orchestrator.discover_and_register()
        report = await orchestrator.discover_and_register()

        assert report.added == []
        assert report.already_present == 1
        assert len(recorder.of("devicesAutoAdded")) == 1

    @pytest.mark.asyncio
    async def test_manual_then_discovered_not_duplicated(self, make_orchestrator, registry):
        orchestrator = make_orchestrator(StubDiscoverer([DiscoveredServer("10.0.0.5", 11111)]))

        await orchestrator.add_manual_device("10.0.0.5", 11111)
        report = await orchestrator.discover_and_register()

        assert report.added == []
        assert len(registry.get_all_devices()) == 1

    @pytest.mark.asyncio
    async def test_no_servers(self, make_orchestrator, recorder):
        report = await make_orchestrator().discover_and_register()

        assert report.to_dict()["addedCount"] == 0
        assert recorder.of("devicesAutoAdded") == []
        assert recorder.names == ["discoveryStarted", "discoveryCompleted", "discoveryStopped"]

    @pytest.mark.asyncio
    async def test_scan_failure(self, make_orchestrator, recorder):
        orchestrator = make_orchestrator(StubDiscoverer(error=NetworkError("socket closed")))

        with pytest.raises(NetworkError):
            await orchestrator.discover_and_register()

        assert recorder.names == ["discoveryStarted", "discoveryError", "discoveryStopped"]
        assert recorder.events[1].data == {"error": "socket closed"}

    @pytest.mark.asyncio
    async def test_scan_in_progress(self, make_orchestrator):
        discoverer = StubDiscoverer()
        discoverer.is_scanning = True

        with pytest.raises(AlreadyInProgressError):
            await make_orchestrator(discoverer).discover_and_register()

    @pytest.mark.asyncio
    async def test_resolution_errors_reported(self, registry):
        resolver = Mock()
        resolver.resolve_server = AsyncMock(side_effect=ProtocolError("bad payload"))
        discoverer = StubDiscoverer([DiscoveredServer("10.0.0.5", 11111)])

        report = await AutoDiscoveryOrchestrator(discoverer, resolver, registry).discover_and_register()

        assert report.failures == {"10.0.0.5:11111": "bad payload"}
        assert registry.get_all_devices() == []
