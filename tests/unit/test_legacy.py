"""
Unit tests for the legacy field mapping.
"""

import pytest

from alpaca_gateway.discovery.legacy import canonical_updates, device_from_fields, to_legacy
from alpaca_gateway.errors import ValidationError


class TestDeviceFromFields:
    """Tests for building records from request fields."""

    def test_legacy_fields(self):
        device = device_from_fields({
            "deviceName": "Main Scope",
            "deviceType": "Telescope",
            "address": "10.0.0.5",
            "devicePort": "11111",
            "deviceNum": 0,
        })

        assert device.id == "10.0.0.5:11111:telescope:0"
        assert device.name == "Main Scope"
        assert device.type == "telescope"
        assert device.port == 11111
        assert device.api_base_url == "/proxy/10.0.0.5/11111/api/v1/telescope/0"
        assert device.device_number == 0

    def test_canonical_fields(self):
        device = device_from_fields({
            "id": "custom-id",
            "name": "Focuser",
            "type": "focuser",
            "ipAddress": "10.0.0.8",
            "port": 4567,
            "properties": {"deviceNumber": 2},
        })

        assert device.id == "custom-id"
        assert device.ip_address == "10.0.0.8"
        assert device.api_base_url == "/proxy/10.0.0.8/4567/api/v1/focuser/2"

    def test_explicit_api_base_url_kept(self):
        device = device_from_fields({
            "id": "x",
            "type": "camera",
            "apiBaseUrl": "/proxy/10.0.0.5/11111/api/v1/camera/1",
        })
        assert device.api_base_url == "/proxy/10.0.0.5/11111/api/v1/camera/1"
        assert device.name == "camera"

    def test_direct_api_base_url_rejected(self):
        with pytest.raises(ValidationError):
            device_from_fields({"id": "x", "type": "camera", "apiBaseUrl": "http://10.0.0.5:11111/api/v1/camera/0"})

    def test_type_required(self):
        with pytest.raises(ValidationError):
            device_from_fields({"id": "x"})

    def test_id_or_location_required(self):
        with pytest.raises(ValidationError):
            device_from_fields({"type": "camera", "address": "10.0.0.5"})

    def test_non_integer_port(self):
        with pytest.raises(ValidationError):
            device_from_fields({"type": "camera", "address": "10.0.0.5", "devicePort": "abc", "deviceNum": 0})


class TestLegacyViews:
    """Tests for canonical_updates and to_legacy."""

    def test_canonical_updates(self):
        assert canonical_updates({"deviceName": "A", "ipAddress": "1.2.3.4", "deviceType": "Dome"}) == {
            "name": "A",
            "ip_address": "1.2.3.4",
            "type": "dome",
        }

    def test_to_legacy(self):
        device = device_from_fields({
            "deviceName": "Dome",
            "deviceType": "dome",
            "address": "10.0.0.5",
            "devicePort": 11111,
            "deviceNum": 0,
        })

        legacy = to_legacy(device)

        assert legacy["deviceName"] == "Dome"
        assert legacy["deviceType"] == "dome"
        assert legacy["address"] == "10.0.0.5"
        assert legacy["devicePort"] == 11111
        assert legacy["deviceNum"] == 0
        assert legacy["apiBaseUrl"] == "/proxy/10.0.0.5/11111/api/v1/dome/0"
        assert legacy["isConnected"] is False
        assert legacy["status"] == "idle"
