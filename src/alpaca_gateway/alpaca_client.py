"""
HTTP client for the Alpaca management API and the device ``connected`` property.

All requests go through the gateway's own ``/proxy/{address}/{port}`` routes,
so the paths used here are the same ones a browser would use.
"""

import asyncio
import itertools
import logging
from typing import Any, Dict, List, Optional

import httpx

from .models import DeviceServerDevice, ServerDescription
from .errors import NetworkError, ProtocolError

logger = logging.getLogger(__name__)


def proxy_base(address: str, port: int) -> str:
    """Proxy-relative base path for an Alpaca server."""
    return f"/proxy/{address}/{port}"


class _AlpacaHTTP:
    """Shared request bookkeeping: client id and transaction ids."""

    def __init__(self, http: httpx.AsyncClient, client_id: int = 1, timeout: Optional[float] = None):
        self._http = http
        self.client_id = client_id
        self.timeout = timeout
        self._transaction_ids = itertools.count(1)

    def _transaction_fields(self) -> Dict[str, str]:
        return {
            "ClientID": str(self.client_id),
            "ClientTransactionID": str(next(self._transaction_ids)),
        }

    async def _request(self, method: str, url: str, target: str, **kwargs: Any) -> Dict[str, Any]:
        """Send a request and return the decoded JSON object."""
        try:
            response = await asyncio.wait_for(self._http.request(method, url, **kwargs), self.timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise NetworkError(f"Timed out contacting Alpaca server at {target}") from e
        except httpx.HTTPError as e:
            raise NetworkError(f"Could not connect to Alpaca server at {target}: {e}") from e

        if response.is_error:
            raise NetworkError(self._describe_failure(response, target))

        try:
            body = response.json()
        except ValueError as e:
            raise ProtocolError(f"Alpaca server at {target} returned a non-JSON body for {url}") from e

        if not isinstance(body, dict):
            raise ProtocolError(f"Alpaca server at {target} returned an unexpected body for {url}")
        return body

    @staticmethod
    def _describe_failure(response: httpx.Response, target: str) -> str:
        # The proxy reports upstream connection failures as {"error", "message"}
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and "message" in body:
            return f"Could not connect to Alpaca server at {target}: {body['message']}"
        return f"Alpaca server at {target} returned HTTP {response.status_code}: {response.text[:200]}"


class AlpacaManagementClient(_AlpacaHTTP):
    """Client for the Alpaca /management endpoints of one or more servers."""

    async def _get_value(self, address: str, port: int, path: str) -> Any:
        target = f"{address}:{port}"
        url = f"{proxy_base(address, port)}{path}"
        logger.debug(f"GET {url}")

        body = await self._request("GET", url, target, params=self._transaction_fields())
        if "Value" not in body:
            raise ProtocolError(f"Alpaca server at {target} returned no Value for {path}")
        return body["Value"]

    async def get_api_versions(self, address: str, port: int) -> List[int]:
        value = await self._get_value(address, port, "/management/apiversions")
        if not isinstance(value, list):
            raise ProtocolError(f"Alpaca server at {address}:{port} returned invalid API versions")
        return [v for v in value if isinstance(v, int)]

    async def get_description(self, address: str, port: int) -> ServerDescription:
        value = await self._get_value(address, port, "/management/v1/description")
        if not isinstance(value, dict):
            raise ProtocolError(f"Alpaca server at {address}:{port} returned an invalid description")

        return ServerDescription(
            server_name=value.get("ServerName"),
            manufacturer=value.get("Manufacturer"),
            manufacturer_version=value.get("ManufacturerVersion"),
            location=value.get("Location"),
        )

    async def get_configured_devices(self, address: str, port: int) -> List[DeviceServerDevice]:
        value = await self._get_value(address, port, "/management/v1/configureddevices")
        if not isinstance(value, list):
            raise ProtocolError(f"Alpaca server at {address}:{port} returned an invalid device list")

        devices = []
        for entry in value:
            if not isinstance(entry, dict):
                raise ProtocolError(f"Alpaca server at {address}:{port} returned an invalid device entry")

            device_type = entry.get("DeviceType")
            device_number = entry.get("DeviceNumber")
            if not isinstance(device_type, str) or not device_type:
                raise ProtocolError(f"Device entry without DeviceType from {address}:{port}")
            if isinstance(device_number, bool) or not isinstance(device_number, int) or device_number < 0:
                raise ProtocolError(f"Device entry with invalid DeviceNumber from {address}:{port}")

            devices.append(DeviceServerDevice(
                device_type=device_type.lower(),
                device_number=device_number,
                name=entry.get("DeviceName") or None,
                unique_id=entry.get("UniqueID") or None,
            ))
        return devices


class AlpacaDeviceConnector(_AlpacaHTTP):
    """Connects and disconnects devices by writing their ``connected`` property."""

    async def connect(self, device) -> None:
        await self._set_connected(device, True)

    async def disconnect(self, device) -> None:
        await self._set_connected(device, False)

    async def _set_connected(self, device, connected: bool) -> None:
        if not device.api_base_url:
            raise ProtocolError(f"Device {device.id} has no apiBaseUrl")

        target = f"{device.ip_address}:{device.port}"
        url = f"{device.api_base_url}/connected"
        data = {"Connected": "True" if connected else "False", **self._transaction_fields()}

        body = await self._request("PUT", url, target, data=data)
        error_number = body.get("ErrorNumber", 0)
        if error_number:
            reason = body.get("ErrorMessage") or f"error {error_number}"
            raise ProtocolError(f"Device {device.id} rejected Connected={connected}: {reason}")
