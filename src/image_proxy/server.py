"""
FastAPI application exposing the image proxy over HTTP.

The app only translates between HTTP and the handler: every request to
``/api/proxy`` with a routed method is passed to ``ProxyHandler.handle``, and
the handler's status, headers and body are written back unchanged. Errors
raised by routing itself (unknown path, unrouted method) get the same JSON
body and CORS headers.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from loguru import logger
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import Settings
from .config import settings as default_settings
from .errors import ErrorBody
from .handler import CORS_HEADERS, ProxyHandler, ProxyRequest

PROXY_PATH = "/api/proxy"
PROXY_METHODS = ["GET", "OPTIONS", "HEAD", "POST", "PUT", "PATCH", "DELETE"]


def create_app(
    settings: Settings | None = None,
    handler: ProxyHandler | None = None,
) -> FastAPI:
    """
    Create the proxy application.

    Args:
        settings: Proxy settings; the global settings when omitted
        handler: Prebuilt handler; when omitted one is built at startup with
            a shared HTTP client that is closed on shutdown

    Returns:
        Configured FastAPI app
    """
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        client = None
        proxy = handler
        if proxy is None:
            client = httpx.AsyncClient(
                timeout=settings.fetch_timeout,
                follow_redirects=True,
                headers={"Accept": "image/*,*/*;q=0.8"},
            )
            proxy = ProxyHandler(settings=settings, client=client)

        app.state.handler = proxy
        proxy.cache.start_sweeper(settings.cache_sweep_interval)
        logger.info(
            "Image proxy ready: domain={}, limit={}/{}ms, ttl={}s",
            settings.allowed_domain,
            settings.rate_max_requests,
            settings.rate_window_ms,
            settings.cache_ttl_seconds,
        )
        try:
            yield
        finally:
            await proxy.cache.stop_sweeper()
            if client is not None:
                await client.aclose()
            logger.info("Image proxy stopped")

    app = FastAPI(title="image-proxy", debug=settings.debug, lifespan=lifespan)

    @app.api_route(PROXY_PATH, methods=PROXY_METHODS)
    async def proxy_image(request: Request) -> Response:
        """Proxy an allowlisted image, optionally resized and recompressed."""
        proxy_request = ProxyRequest(
            method=request.method,
            headers=dict(request.headers),
            query=dict(request.query_params),
            client_address=request.client.host if request.client else None,
        )
        result = await request.app.state.handler.handle(proxy_request)
        return Response(
            content=result.body,
            status_code=result.status_code,
            headers=result.headers,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        message = "Not found" if exc.status_code == 404 else str(exc.detail)
        return JSONResponse(
            ErrorBody(error=message).model_dump(),
            status_code=exc.status_code,
            headers={**CORS_HEADERS, **(exc.headers or {})},
        )

    return app
