"""
Reverse proxy from ``/proxy/{address}/{port}/...`` to ``http://{address}:{port}/...``.

Lets a browser served by the gateway reach any Alpaca device on the network
through same-origin paths.
"""

import logging
from typing import Dict, Mapping, Optional

import httpx

from .errors import NetworkError

logger = logging.getLogger(__name__)

HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
}

# httpx recomputes these for the forwarded request and decodes response bodies
_REQUEST_SKIP = HOP_BY_HOP_HEADERS | {"host", "content-length"}
_RESPONSE_SKIP = HOP_BY_HOP_HEADERS | {"content-length", "content-encoding"}


def netloc(address: str, port: int) -> str:
    """host:port, with IPv6 literals bracketed."""
    if ":" in address and not address.startswith("["):
        address = f"[{address}]"
    return f"{address}:{port}"


class ProxyGateway:
    """
    Forwards requests to Alpaca servers over a shared httpx client.

    Usage:
        gateway = ProxyGateway(timeout=30.0)
        response = await gateway.forward("GET", "10.0.0.5", 11111, "management/apiversions")
        await gateway.aclose()
    """

    def __init__(self, timeout: float = 30.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport, follow_redirects=False)

    @staticmethod
    def target_url(address: str, port: int, path: str = "", query: str = "") -> str:
        url = f"http://{netloc(address, port)}/{path.lstrip('/')}"
        if query:
            url = f"{url}?{query}"
        return url

    @staticmethod
    def forward_headers(headers: Mapping[str, str], address: str, port: int) -> Dict[str, str]:
        """Copy request headers, pointing Host and Origin at the target."""
        forwarded = {
            name: value for name, value in headers.items()
            if name.lower() not in _REQUEST_SKIP
        }
        forwarded["host"] = netloc(address, port)
        for name in list(forwarded):
            if name.lower() == "origin":
                forwarded[name] = f"http://{netloc(address, port)}"
        return forwarded

    @staticmethod
    def response_headers(response: httpx.Response) -> Dict[str, str]:
        return {
            name: value for name, value in response.headers.items()
            if name.lower() not in _RESPONSE_SKIP
        }

    async def forward(
        self,
        method: str,
        address: str,
        port: int,
        path: str = "",
        headers: Optional[Mapping[str, str]] = None,
        body: bytes = b"",
        query: str = "",
    ) -> httpx.Response:
        """Send one request upstream; NetworkError on connection failure or timeout."""
        url = self.target_url(address, port, path, query)
        logger.debug(f"Proxying request to {address}:{port}: {method} /{path.lstrip('/')}")

        try:
            return await self._client.request(
                method,
                url,
                headers=self.forward_headers(headers or {}, address, port),
                content=body or None,
            )
        except httpx.TimeoutException as e:
            raise NetworkError(f"Timed out waiting for {address}:{port}") from e
        except httpx.HTTPError as e:
            raise NetworkError(str(e) or e.__class__.__name__) from e
        except httpx.InvalidURL as e:
            raise NetworkError(f"Invalid upstream address {address}:{port}: {e}") from e

    async def aclose(self) -> None:
        await self._client.aclose()
