"""
Alpaca Gateway - FastAPI application entry point.
"""

import argparse
import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from . import __version__
from .config import get_config, set_config, GatewayConfig
from .errors import (
    AlreadyInProgressError,
    GatewayError,
    NetworkError,
    NotFoundError,
    ProtocolError,
    ValidationError,
)
from .services import build_services
from .api import devices_router, discovery_router, proxy_router, health_router

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format=LOG_FORMAT,
    handlers=[
        logging.StreamHandler(sys.stdout),
    ]
)
logger = logging.getLogger(__name__)

# Checked in order; DeviceConnectionError is a NetworkError
ERROR_STATUS_CODES = [
    (NotFoundError, 404),
    (ValidationError, 400),
    (AlreadyInProgressError, 409),
    (NetworkError, 502),
    (ProtocolError, 502),
]


def status_code_for(error: GatewayError) -> int:
    for error_class, status_code in ERROR_STATUS_CODES:
        if isinstance(error, error_class):
            return status_code
    return 500


async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.message}")
    return JSONResponse(status_code=status_code, content=exc.to_dict())


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events."""
    services = app.state.services
    config = services.config

    # Add file handler if configured
    file_handler = None
    if config.log_file:
        file_handler = logging.FileHandler(config.log_file)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logging.getLogger().addHandler(file_handler)
        logger.info(f"Logging to file: {config.log_file}")

    # Startup
    logger.info("=" * 60)
    logger.info(f"Alpaca Gateway v{__version__}")
    logger.info("=" * 60)
    logger.info(f"Host: {config.host}:{config.port}")
    logger.info(f"Discovery: {config.broadcast_address}:{config.discovery_port} ({config.discovery_window}s window)")
    logger.info("=" * 60)

    try:
        await services.start()
    except NetworkError as e:
        # Scans retry the bind, so the HTTP surface still comes up
        logger.warning(f"Discovery client not started: {e.message}")

    logger.info("=" * 60)
    logger.info("Alpaca Gateway ready")
    logger.info("=" * 60)

    yield

    # Shutdown
    logger.info("Shutting down Alpaca Gateway")
    await services.close()
    if file_handler is not None:
        logging.getLogger().removeHandler(file_handler)
        file_handler.close()
    logger.info("Alpaca Gateway stopped")


def create_app(
    config: Optional[GatewayConfig] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Build the FastAPI app with its own set of services."""
    config = config or get_config()

    app = FastAPI(
        title="Alpaca Gateway",
        description="Alpaca discovery, proxy and device registry",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.services = build_services(config, app, transport=transport)

    app.add_exception_handler(GatewayError, gateway_error_handler)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(proxy_router)
    app.include_router(discovery_router)
    app.include_router(devices_router)
    app.include_router(health_router)
    return app


app = create_app()


def main():
    """Run the Alpaca Gateway."""
    defaults = GatewayConfig.from_env()

    parser = argparse.ArgumentParser(description="Alpaca Gateway")
    parser.add_argument(
        "--port",
        type=int,
        default=defaults.port,
        help=f"Port to run the service on (default: {defaults.port})"
    )
    parser.add_argument(
        "--host",
        type=str,
        default=defaults.host,
        help=f"Host to bind to (default: {defaults.host})"
    )
    parser.add_argument(
        "--discovery-port",
        type=int,
        default=defaults.discovery_port,
        help=f"Alpaca discovery UDP port (default: {defaults.discovery_port})"
    )
    parser.add_argument(
        "--broadcast-address",
        type=str,
        default=defaults.broadcast_address,
        help=f"Discovery broadcast address (default: {defaults.broadcast_address})"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=defaults.log_level,
        help=f"Logging level (default: {defaults.log_level})"
    )

    args = parser.parse_args()

    # Update configuration
    defaults.host = args.host
    defaults.port = args.port
    defaults.discovery_port = args.discovery_port
    defaults.broadcast_address = args.broadcast_address
    defaults.log_level = args.log_level
    set_config(defaults)

    # Set log level
    logging.getLogger().setLevel(getattr(logging, args.log_level))

    logger.info(f"Starting Alpaca Gateway on {args.host}:{args.port}")

    uvicorn.run(
        create_app(defaults),
        host=args.host,
        port=args.port,
        log_level=args.log_level.lower(),
    )


if __name__ == "__main__":
    main()
