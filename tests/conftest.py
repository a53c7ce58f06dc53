"""Pytest fixtures and configuration for image-proxy tests.

This module provides shared fixtures for testing the rate limiter, cache
store, transform pipeline, proxy handler and HTTP app.
"""

from io import BytesIO

import pytest
from PIL import Image

from image_proxy.cache import CacheStore
from image_proxy.config import Settings
from image_proxy.handler import ProxyHandler, ProxyRequest
from image_proxy.limiter import RateLimiter

ALLOWED_DOMAIN = "artsco202525.speedgabia.com"
IMAGE_URL = f"http://{ALLOWED_DOMAIN}/a.jpg"


def make_image_bytes(
    size: tuple[int, int] = (100, 100),
    fmt: str = "JPEG",
    mode: str = "RGB",
    color: object = "red",
) -> bytes:
    """Encode a solid-colour image with Pillow."""
    img = Image.new(mode, size, color=color)
    buffer = BytesIO()
    img.save(buffer, format=fmt)
    return buffer.getvalue()


class FakeClock:
    """Manually advanced clock returning epoch seconds."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# --- Sample Data Fixtures ---


@pytest.fixture
def make_image():
    """Factory for encoded sample images."""
    return make_image_bytes


@pytest.fixture
def sample_image_bytes() -> bytes:
    """A 100x100 red JPEG."""
    return make_image_bytes()


@pytest.fixture
def wide_jpeg_bytes() -> bytes:
    """A 1000x500 JPEG."""
    return make_image_bytes(size=(1000, 500), color="blue")


@pytest.fixture
def rgba_png_bytes() -> bytes:
    """A 200x100 PNG with a semi-transparent fill."""
    return make_image_bytes(size=(200, 100), fmt="PNG", mode="RGBA", color=(255, 0, 0, 128))


@pytest.fixture
def rgb_png_bytes() -> bytes:
    """A 200x100 opaque PNG."""
    return make_image_bytes(size=(200, 100), fmt="PNG", color="green")


# --- Component Fixtures ---


@pytest.fixture
def test_settings() -> Settings:
    """Settings with fixed values independent of the environment."""
    return Settings(
        allowed_domain=ALLOWED_DOMAIN,
        rate_window_ms=60_000,
        rate_max_requests=15,
        cache_ttl_seconds=604_800,
        default_quality=80,
        fetch_timeout=5,
        fetch_attempts=1,
        request_timeout=10,
        debug=False,
    )


@pytest.fixture
def clock() -> FakeClock:
    """A fake clock shared by the handler and its stores."""
    return FakeClock()


@pytest.fixture
def cache_store(clock: FakeClock) -> CacheStore:
    """A fresh cache store driven by the fake clock."""
    return CacheStore(ttl_seconds=604_800, clock=clock)


@pytest.fixture
def rate_limiter() -> RateLimiter:
    """A fresh limiter with the production window."""
    return RateLimiter(window_ms=60_000, max_requests=15)


@pytest.fixture
def handler(test_settings, rate_limiter, cache_store, clock) -> ProxyHandler:
    """A handler with fresh stores; upstream fetches go through httpx (mock with respx)."""
    return ProxyHandler(
        settings=test_settings,
        limiter=rate_limiter,
        cache=cache_store,
        clock=clock,
    )


@pytest.fixture
def make_request():
    """Build a GET proxy request with the given query parameters."""

    def _make(
        url: str | None = IMAGE_URL,
        method: str = "GET",
        client: str = "10.0.0.1",
        headers: dict[str, str] | None = None,
        **params: object,
    ) -> ProxyRequest:
        query = {name: str(value) for name, value in params.items() if value is not None}
        if url is not None:
            query["url"] = url
        return ProxyRequest(
            method=method,
            headers=headers or {},
            query=query,
            client_address=client,
        )

    return _make
