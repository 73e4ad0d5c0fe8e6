"""
Unit tests for server resolution and the duplicate check.
"""

import pytest

from alpaca_gateway.alpaca_client import AlpacaManagementClient
from alpaca_gateway.discovery import DeviceResolver, is_device_added, supported_types_filter
from alpaca_gateway.errors import NetworkError
from alpaca_gateway.models import DeviceServerDevice, DiscoveredServer
from tests.fixtures import FakeAlpacaNetwork, FakeAlpacaServer, make_device


# =============================================================================
# Duplicate detection
# =============================================================================

class TestIsDeviceAdded:
    """Tests for is_device_added."""

    def test_matching_api_base_url(self):
        existing = make_device()
        candidate = make_device()
        candidate.ip_address = "other"
        assert is_device_added(candidate, [existing])

    def test_matching_location_without_url(self):
        existing = make_device()
        del existing.properties["apiBaseUrl"]
        assert is_device_added(make_device(), [existing])

    def test_matching_location_with_different_url(self):
        candidate = make_device()
        candidate.properties["apiBaseUrl"] = "/proxy/10.0.0.5/11111/api/v1/telescope/0/"
        assert is_device_added(candidate, [make_device()])

    def test_different_number_is_new(self):
        assert not is_device_added(make_device(number=1), [make_device(number=0)])

    def test_different_port_is_new(self):
        assert not is_device_added(make_device(port=11112), [make_device()])

    def test_empty_registry(self):
        assert not is_device_added(make_device(), [])


class TestSupportedTypesFilter:
    """Tests for supported_types_filter."""

    def test_default_types(self):
        keep = supported_types_filter()
        assert keep(DeviceServerDevice("telescope", 0))
        assert keep(DeviceServerDevice("covercalibrator", 0))
        assert not keep(DeviceServerDevice("video", 0))

    def test_custom_types_case_insensitive(self):
        keep = supported_types_filter(["Camera"])
        assert keep(DeviceServerDevice("camera", 0))
        assert not keep(DeviceServerDevice("telescope", 0))


# =============================================================================
# Resolution
# =============================================================================

class TestDeviceResolver:
    """Tests for DeviceResolver."""

    @pytest.mark.asyncio
    async def test_resolve_server(self, alpaca_network):
        async with alpaca_network.client() as http:
            resolver = DeviceResolver(AlpacaManagementClient(http))
            devices = await resolver.resolve_server(DiscoveredServer("10.0.0.5", 11111))

        assert len(devices) == 1
        device = devices[0]
        assert device.id == "10.0.0.5:11111:telescope:0"
        assert device.name == "Test Telescope"
        assert device.type == "telescope"
        assert device.ip_address == "10.0.0.5"
        assert device.port == 11111
        assert device.properties["apiBaseUrl"] == "/proxy/10.0.0.5/11111/api/v1/telescope/0"
        assert device.properties["serverName"] == "Test Server"
        assert device.properties["manufacturer"] == "Test Co"
        assert device.properties["version"] == "1.0"
        assert device.properties["location"] == "Backyard"
        assert device.properties["uniqueId"] == "abc-123"
        assert device.properties["isManualEntry"] is False
        assert device.properties["alpacaPort"] == 11111

    @pytest.mark.asyncio
    async def test_unsupported_types_skipped(self):
        network = FakeAlpacaNetwork()
        network.add("10.0.0.5", 11111, FakeAlpacaServer(devices=[
            {"DeviceType": "Camera", "DeviceNumber": 0},
            {"DeviceType": "Video", "DeviceNumber": 0},
            {"DeviceType": "Focuser", "DeviceNumber": 1},
        ]))

        async with network.client() as http:
            resolver = DeviceResolver(AlpacaManagementClient(http))
            devices = await resolver.resolve_server(DiscoveredServer("10.0.0.5", 11111))

        assert [d.id for d in devices] == ["10.0.0.5:11111:camera:0", "10.0.0.5:11111:focuser:1"]
        assert devices[0].name == "camera 0"

    @pytest.mark.asyncio
    async def test_description_defaults(self):
        network = FakeAlpacaNetwork()
        network.add("10.0.0.5", 11111, FakeAlpacaServer(description={}))

        async with network.client() as http:
            resolver = DeviceResolver(AlpacaManagementClient(http))
            devices = await resolver.resolve_server(DiscoveredServer("10.0.0.5", 11111))

        assert devices[0].properties["serverName"] == "Unknown Server"
        assert devices[0].properties["manufacturer"] == "Unknown"

    @pytest.mark.asyncio
    async def test_unreachable_server_fails_whole(self):
        async with FakeAlpacaNetwork().client() as http:
            resolver = DeviceResolver(AlpacaManagementClient(http))
            with pytest.raises(NetworkError):
                await resolver.resolve_server(DiscoveredServer("10.0.0.5", 11111))

    @pytest.mark.asyncio
    async def test_describe_server_keeps_original(self, alpaca_network):
        server = DiscoveredServer("10.0.0.5", 11111)

        async with alpaca_network.client() as http:
            described = await DeviceResolver(AlpacaManagementClient(http)).describe_server(server)

        assert described.server_name == "Test Server"
        assert server.server_name is None
