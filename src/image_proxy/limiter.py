"""In-memory sliding-window rate limiter."""

import threading
from collections import defaultdict


class RateLimiter:
    """Track admitted request timestamps per client and enforce a sliding window.

    Time is always supplied by the caller in milliseconds, so the limiter never
    reads a clock itself.
    """

    def __init__(self, window_ms: int = 60_000, max_requests: int = 15):
        self.window_ms = window_ms
        self.max_requests = max_requests
        self._requests: dict[str, list[int]] = defaultdict(list)
        self._lock = threading.Lock()

    def _active(self, client_id: str, now_ms: int) -> list[int]:
        # Filter by value: entries may arrive out of order
        window_start = now_ms - self.window_ms
        active = [ts for ts in self._requests[client_id] if ts > window_start]
        self._requests[client_id] = active
        return active

    def admit(self, client_id: str, now_ms: int) -> bool:
        """Check if *client_id* may make another request at *now_ms*.

        Records the timestamp only when admitted. Rejected attempts
        do not consume a slot.
        """
        with self._lock:
            active = self._active(client_id, now_ms)
            if len(active) >= self.max_requests:
                return False
            active.append(now_ms)
            return True

    def remaining(self, client_id: str, now_ms: int) -> int:
        """Requests remaining in the current window for *client_id*."""
        with self._lock:
            return max(0, self.max_requests - len(self._active(client_id, now_ms)))

    def retry_after(self, client_id: str, now_ms: int) -> int | None:
        """Seconds until the oldest timestamp leaves the window.

        Returns ``None`` if the client is not currently rate-limited.
        """
        with self._lock:
            active = self._active(client_id, now_ms)
            if len(active) < self.max_requests:
                return None
            oldest = min(active)
            # Ceiling so a whole-second wait is not overstated
            return -(-(oldest + self.window_ms - now_ms) // 1000)
