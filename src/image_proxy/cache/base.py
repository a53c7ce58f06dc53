"""
Data models for the response cache.

Provides the cached entry model and the cache key builder.
"""

from pydantic import BaseModel, ConfigDict, Field

AUTO = "auto"


class CacheEntry(BaseModel):
    """A transformed image held in the cache."""

    model_config = ConfigDict(frozen=True)

    data: bytes = Field(description="Encoded image bytes")
    content_type: str = Field(description="MIME type (e.g., 'image/jpeg', 'image/webp')")
    original_format: str | None = Field(default=None, description="Format detected in the source")
    output_format: str | None = Field(default=None, description="Format the bytes are encoded in")
    expires_at: float = Field(description="Epoch seconds after which the entry is stale")

    def is_expired(self, now: float) -> bool:
        """Return True once *now* has reached the expiration time."""
        return now >= self.expires_at


def _part(value: object | None) -> str:
    return AUTO if value is None else str(value)


def build_cache_key(
    url: str,
    width: int | None = None,
    height: int | None = None,
    quality: int | None = None,
    fmt: str | None = None,
) -> str:
    """
    Build the cache key for a source URL and its transform parameters.

    Unset parameters render as ``auto``, so the key always has the shape
    ``<url>-w<width>-h<height>-q<quality>-f<format>``.

    Args:
        url: Source image URL
        width: Requested width, or None
        height: Requested height, or None
        quality: Requested quality, or None
        fmt: Requested output format, or None

    Returns:
        Deterministic key string
    """
    return (
        f"{url}-w{_part(width)}-h{_part(height)}"
        f"-q{_part(quality)}-f{_part(fmt)}"
    )
