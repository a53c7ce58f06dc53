"""
Proxy request handling.

Validates a parsed request, applies the rate limit, serves from the cache or
fetches and transforms the source image, and returns a status, headers and
body for the HTTP layer to write.
"""

import asyncio
import time
from collections.abc import Callable
from urllib.parse import urlparse

import httpx
from loguru import logger
from pydantic import BaseModel, Field

from .cache import CacheEntry, CacheStore, build_cache_key
from .config import Settings
from .config import settings as default_settings
from .errors import (
    Forbidden,
    ImageProcessingFailed,
    InvalidRequest,
    MethodNotAllowed,
    ProxyError,
    RateLimited,
    RequestTimeout,
    UpstreamFetchFailed,
)
from .images import ImageProcessingError, TransformRequest, transform
from .limiter import RateLimiter
from .logging import request_logger

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

RETRY_BACKOFF_SECONDS = 0.5


class ProxyRequest(BaseModel):
    """A request as parsed by the HTTP layer."""

    method: str = Field(default="GET", description="HTTP method")
    headers: dict[str, str] = Field(default_factory=dict, description="Request headers")
    query: dict[str, str] = Field(default_factory=dict, description="Query parameters")
    client_address: str | None = Field(default=None, description="Peer address of the connection")

    def header(self, name: str) -> str | None:
        """Case-insensitive header lookup."""
        name = name.lower()
        for key, value in self.headers.items():
            if key.lower() == name:
                return value
        return None


class ProxyResponse(BaseModel):
    """Status, headers and body handed back to the HTTP layer."""

    status_code: int
    headers: dict[str, str] = Field(default_factory=dict)
    body: bytes = b""


class ProxyHandler:
    """Serves proxied images through the rate limiter, cache and transform pipeline."""

    def __init__(
        self,
        settings: Settings | None = None,
        limiter: RateLimiter | None = None,
        cache: CacheStore | None = None,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the handler.

        Args:
            settings: Proxy settings; the global settings when omitted
            limiter: Rate limiter; a fresh one sized from settings when omitted
            cache: Cache store; a fresh one using settings' TTL when omitted
            client: Shared HTTP client for upstream fetches; one is opened per
                fetch when omitted
            clock: Returns the current time in epoch seconds
        """
        self.settings = settings or default_settings
        self.clock = clock
        self.limiter = limiter or RateLimiter(
            window_ms=self.settings.rate_window_ms,
            max_requests=self.settings.rate_max_requests,
        )
        self.cache = cache or CacheStore(ttl_seconds=self.settings.cache_ttl_seconds, clock=clock)
        self.client = client
        self._inflight: dict[str, asyncio.Lock] = {}

    async def handle(self, request: ProxyRequest, timeout: float | None = None) -> ProxyResponse:
        """
        Handle one proxy request.

        Args:
            request: Parsed request from the HTTP layer
            timeout: Budget in seconds for fetching and transforming on a cache
                miss; ``settings.request_timeout`` when omitted

        Returns:
            ProxyResponse. Failures are returned as JSON error responses,
            never raised; only cancellation propagates.
        """
        method = request.method.upper()
        if method == "OPTIONS":
            return ProxyResponse(status_code=200, headers=dict(CORS_HEADERS))

        client_id = self.client_id(request)
        log = request_logger(client_id, request.query.get("url"))

        try:
            if method != "GET":
                raise MethodNotAllowed()
            url, params = self.validate(request.query)
            self.check_rate(client_id)
            return await self._serve(url, params, timeout)
        except ProxyError as e:
            if e.status_code >= 500:
                log.error("Proxy error {}: {}", e.status_code, e.message)
            else:
                log.warning("Rejected request with {}: {}", e.status_code, e.message)
            return self._error_response(e)
        except Exception as e:
            log.exception("Unexpected proxy failure: {}", e)
            return self._error_response(ImageProcessingFailed())

    def client_id(self, request: ProxyRequest) -> str:
        """Identify the caller: first X-Forwarded-For hop, else the connection address."""
        forwarded = request.header("x-forwarded-for")
        if forwarded:
            first = forwarded.split(",")[0].strip()
            if first:
                return first
        return request.client_address or "unknown"

    def validate(self, query: dict[str, str]) -> tuple[str, TransformRequest]:
        """
        Check the source URL and parse the transform parameters.

        Raises:
            InvalidRequest: If the URL is missing or malformed, or a parameter is invalid
            Forbidden: If the URL's host is outside the allowed domain
        """
        url = query.get("url")
        if not url:
            raise InvalidRequest("Missing url parameter")

        try:
            parsed = urlparse(url)
            host = parsed.hostname
        except ValueError as e:
            raise InvalidRequest("Invalid url parameter") from e
        if parsed.scheme not in ("http", "https") or not host:
            raise InvalidRequest("Invalid url parameter")

        if not self.host_allowed(host):
            raise Forbidden()

        fmt = (query.get("format") or "").strip().lower() or None
        params = TransformRequest(
            width=_int_param(query, "width", minimum=1),
            height=_int_param(query, "height", minimum=1),
            quality=_int_param(query, "quality", minimum=0, maximum=100),
            format=fmt,
        )
        return url, params

    def host_allowed(self, host: str) -> bool:
        """Whether *host* is the allowed domain or one of its subdomains."""
        domain = self.settings.allowed_domain.lower()
        host = host.lower().rstrip(".")
        return host == domain or host.endswith("." + domain)

    def check_rate(self, client_id: str) -> None:
        """
        Admit or reject the caller.

        Raises:
            RateLimited: If the client has used up its window
        """
        now_ms = int(self.clock() * 1000)
        if not self.limiter.admit(client_id, now_ms):
            raise RateLimited(retry_after=self.limiter.retry_after(client_id, now_ms))

    async def _serve(self, url: str, params: TransformRequest, timeout: float | None) -> ProxyResponse:
        key = build_cache_key(url, params.width, params.height, params.quality, params.format)

        entry = self.cache.get(key)
        if entry is not None:
            logger.debug("Cache hit: {}", key[:80])
            return self._image_response(entry, hit=True)

        # One fetch per key; concurrent misses wait and then read the cache
        lock = self._inflight.setdefault(key, asyncio.Lock())
        try:
            async with lock:
                entry = self.cache.get(key)
                hit = entry is not None
                if entry is None:
                    budget = timeout if timeout is not None else self.settings.request_timeout
                    try:
                        entry = await asyncio.wait_for(
                            self._fetch_and_store(key, url, params), budget
                        )
                    except asyncio.TimeoutError as e:
                        raise RequestTimeout() from e
        finally:
            # A later request may have installed its own lock under this key
            if self._inflight.get(key) is lock and not lock.locked():
                self._inflight.pop(key, None)

        logger.debug("Cache {}: {}", "hit" if hit else "miss", key[:80])
        return self._image_response(entry, hit=hit)

    async def _fetch_and_store(self, key: str, url: str, params: TransformRequest) -> CacheEntry:
        data = await self.fetch(url)
        try:
            result = await asyncio.to_thread(
                transform, data, params, self.settings.default_quality
            )
        except ImageProcessingError as e:
            logger.warning("Failed to process image {}: {}", url[:60], e)
            raise ImageProcessingFailed() from e

        return self.cache.set(
            key,
            result.data,
            result.content_type,
            original_format=result.original_format.value,
            output_format=result.output_format.value,
        )

    async def fetch(self, url: str) -> bytes:
        """
        Fetch the source image.

        The body is streamed and abandoned as soon as it is known to exceed
        ``settings.max_image_bytes``, either from ``Content-Length`` or from
        the bytes received so far. Transport errors are retried with
        exponential backoff up to ``settings.fetch_attempts`` times;
        unsuccessful statuses are not.

        Raises:
            UpstreamFetchFailed: If the upstream cannot be reached, answers with
                a non-2xx status, or returns a body over ``max_image_bytes``
        """
        attempts = max(1, self.settings.fetch_attempts)
        for attempt in range(attempts):
            try:
                return await self._download(url)
            except httpx.TransportError as e:
                if attempt == attempts - 1:
                    logger.warning(
                        "Failed to fetch image after {} attempts: {} - {}", attempts, url[:60], e
                    )
                    raise UpstreamFetchFailed() from e
                logger.debug("Fetch attempt {} failed, retrying: {}", attempt + 1, e)
                await asyncio.sleep(RETRY_BACKOFF_SECONDS * 2**attempt)
            except httpx.HTTPError as e:
                logger.warning("Failed to fetch image: {} - {}", url[:60], e)
                raise UpstreamFetchFailed() from e
        raise UpstreamFetchFailed()

    async def _download(self, url: str) -> bytes:
        if self.client is not None:
            return await self._read_body(self.client, url)
        async with httpx.AsyncClient(
            timeout=self.settings.fetch_timeout, follow_redirects=True
        ) as client:
            return await self._read_body(client, url)

    async def _read_body(self, client: httpx.AsyncClient, url: str) -> bytes:
        limit = self.settings.max_image_bytes
        async with client.stream("GET", url) as response:
            if not response.is_success:
                logger.warning(
                    "Upstream answered {} {} for {}",
                    response.status_code,
                    response.reason_phrase,
                    url[:60],
                )
                raise UpstreamFetchFailed()

            declared = response.headers.get("content-length", "")
            if declared.isdigit() and int(declared) > limit:
                logger.warning(
                    "Upstream image too large: Content-Length {} from {}", declared, url[:60]
                )
                raise UpstreamFetchFailed("Image too large")

            chunks = []
            received = 0
            async for chunk in response.aiter_bytes():
                received += len(chunk)
                if received > limit:
                    logger.warning(
                        "Upstream image too large: over {} bytes from {}", limit, url[:60]
                    )
                    raise UpstreamFetchFailed("Image too large")
                chunks.append(chunk)

            logger.debug(
                "Fetched image: {} bytes, type={}", received, response.headers.get("content-type")
            )
        return b"".join(chunks)

    def _image_response(self, entry: CacheEntry, hit: bool) -> ProxyResponse:
        headers = {
            **CORS_HEADERS,
            "Content-Type": entry.content_type,
            "Cache-Control": self.settings.cache_control,
            "X-Cache": "HIT" if hit else "MISS",
        }
        if entry.original_format:
            headers["X-Original-Format"] = entry.original_format
        if entry.output_format:
            headers["X-Output-Format"] = entry.output_format
        return ProxyResponse(status_code=200, headers=headers, body=entry.data)

    def _error_response(self, error: ProxyError) -> ProxyResponse:
        headers = {**CORS_HEADERS, "Content-Type": "application/json"}
        if isinstance(error, RateLimited) and error.retry_after is not None:
            headers["Retry-After"] = str(error.retry_after)
        return ProxyResponse(status_code=error.status_code, headers=headers, body=error.to_body())


def _int_param(
    query: dict[str, str],
    name: str,
    minimum: int,
    maximum: int | None = None,
) -> int | None:
    raw = query.get(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        value = int(raw)
    except ValueError as e:
        raise InvalidRequest(f"Invalid {name} parameter") from e
    if value < minimum or (maximum is not None and value > maximum):
        raise InvalidRequest(f"Invalid {name} parameter")
    return value
