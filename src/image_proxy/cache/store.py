"""
In-memory TTL cache for transformed images.

Entries expire lazily on read; a background sweeper reclaims memory held by
entries nobody asks for again.
"""

import asyncio
import threading
import time
from collections.abc import Callable

from loguru import logger

from .base import CacheEntry

DEFAULT_TTL_SECONDS = 604_800
SWEEP_BATCH_SIZE = 256


class CacheStore:
    """Manages cached image payloads keyed by source URL and transform parameters."""

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the cache store.

        Args:
            ttl_seconds: Lifetime of each entry from the moment it is stored
            clock: Returns the current time in epoch seconds
        """
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._sweeper: asyncio.Task | None = None
        logger.debug("CacheStore initialized: ttl={}s", ttl_seconds)

    def get(self, key: str) -> CacheEntry | None:
        """
        Look up a cache entry.

        Args:
            key: Cache key built with ``build_cache_key``

        Returns:
            The entry, or None on a miss. Expired entries are dropped and
            reported as misses.
        """
        now = self.clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(now):
                del self._entries[key]
                logger.debug("Cache entry expired: {}", key[:80])
                return None
            return entry

    def set(
        self,
        key: str,
        data: bytes,
        content_type: str,
        original_format: str | None = None,
        output_format: str | None = None,
    ) -> CacheEntry:
        """
        Store a payload, replacing any previous entry for the key.

        Returns:
            The newly stored entry
        """
        entry = CacheEntry(
            data=data,
            content_type=content_type,
            original_format=original_format,
            output_format=output_format,
            expires_at=self.clock() + self.ttl_seconds,
        )
        with self._lock:
            self._entries[key] = entry
        logger.debug("Cached {} bytes ({}) under {}", len(data), content_type, key[:80])
        return entry

    def sweep(self) -> int:
        """
        Remove every expired entry.

        The lock is taken once per batch of keys so request handling is never
        blocked for the whole pass.

        Returns:
            Number of entries removed
        """
        now = self.clock()
        with self._lock:
            keys = list(self._entries)

        removed = 0
        for start in range(0, len(keys), SWEEP_BATCH_SIZE):
            with self._lock:
                for key in keys[start : start + SWEEP_BATCH_SIZE]:
                    entry = self._entries.get(key)
                    if entry is not None and entry.is_expired(now):
                        del self._entries[key]
                        removed += 1

        if removed:
            logger.info("Cache sweep removed {} expired entries", removed)
        return removed

    async def run_sweeper(self, interval_seconds: float) -> None:
        """Call ``sweep`` every *interval_seconds* until cancelled."""
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                self.sweep()
            except Exception as e:
                logger.exception("Cache sweep failed: {}", e)

    def start_sweeper(self, interval_seconds: float) -> asyncio.Task:
        """Start the background sweeper on the running event loop."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self.run_sweeper(interval_seconds))
            logger.debug("Cache sweeper started: every {}s", interval_seconds)
        return self._sweeper

    async def stop_sweeper(self) -> None:
        """Cancel the background sweeper and wait for it to finish."""
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None
        logger.debug("Cache sweeper stopped")

    def clear(self) -> None:
        """Drop every entry."""
        with self._lock:
            self._entries.clear()

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
