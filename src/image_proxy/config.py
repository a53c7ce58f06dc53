"""Configuration management using pydantic-settings.

Loads from environment variables and .env file.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    Attributes:
        allowed_domain: Host (or parent domain) images may be proxied from.
        rate_window_ms: Length of the sliding rate-limit window in milliseconds.
        rate_max_requests: Requests admitted per client within one window.
        cache_ttl_seconds: Lifetime of a cached image.
        cache_sweep_interval_ms: How often expired cache entries are purged.
        default_quality: JPEG/WebP quality used when none is requested (0-100).
        fetch_timeout: HTTP timeout for upstream fetches in seconds.
        fetch_attempts: Attempts made on transport errors before giving up.
        request_timeout: Budget for fetch + transform of one request in seconds.
        max_image_bytes: Largest upstream body accepted.
        host: Server bind address.
        port: Server bind port.
        debug: Run the FastAPI app in debug mode.
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_json: Output logs in JSON format for production.

    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Access control
    allowed_domain: str = "artsco202525.speedgabia.com"

    # Rate limiting
    rate_window_ms: int = 60_000
    rate_max_requests: int = 15

    # Caching
    cache_ttl_seconds: int = 604_800  # one week
    cache_sweep_interval_ms: int = 3_600_000

    # Image processing
    default_quality: int = 80

    # Upstream fetching
    fetch_timeout: float = 30
    fetch_attempts: int = 2
    request_timeout: float = 60
    max_image_bytes: int = 20 * 1024 * 1024

    # Server
    host: str = "0.0.0.0"
    port: int = 3000
    debug: bool = False

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    @property
    def cache_control(self) -> str:
        """Return the Cache-Control value sent with proxied images.

        Returns:
            str: A public directive whose max-age matches the cache TTL.

        """
        return f"public, max-age={self.cache_ttl_seconds}"

    @property
    def cache_sweep_interval(self) -> float:
        """Return the sweep interval in seconds."""
        return self.cache_sweep_interval_ms / 1000


# Global settings instance
settings = Settings()
