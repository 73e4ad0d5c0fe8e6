"""
Alpaca proxy API endpoints.

Any request to /proxy/{address}/{port}/... is forwarded verbatim to the
Alpaca server at {address}:{port}. Management and device calls made by the
gateway itself also travel this route.
"""

import logging

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse

from ..errors import NetworkError
from .deps import get_services

logger = logging.getLogger(__name__)
router = APIRouter()

PROXY_METHODS = ["GET", "PUT", "POST", "DELETE", "PATCH", "HEAD", "OPTIONS"]


@router.api_route("/proxy/{address}/{port}", methods=PROXY_METHODS)
@router.api_route("/proxy/{address}/{port}/{path:path}", methods=PROXY_METHODS)
async def proxy_request(request: Request, address: str, port: int, path: str = ""):
    """Forward the request and relay the upstream response."""
    gateway = get_services(request).proxy
    body = await request.body()

    try:
        upstream = await gateway.forward(
            request.method,
            address,
            port,
            path,
            headers=request.headers,
            body=body,
            query=request.url.query,
        )
    except NetworkError as e:
        logger.error(f"Proxy error for {address}:{port}: {e.message}")
        return JSONResponse(
            status_code=500,
            content={"error": "Proxy error", "message": e.message},
        )

    logger.debug(f"Proxy response from {address}:{port}: {upstream.status_code}")
    return Response(
        content=upstream.content,
        status_code=upstream.status_code,
        headers=gateway.response_headers(upstream),
    )
