"""Unit tests for the sliding-window rate limiter."""

from image_proxy.limiter import RateLimiter

NOW = 1_700_000_000_000


def test_first_request_admitted():
    """A client never seen before is admitted."""
    limiter = RateLimiter(window_ms=60_000, max_requests=15)
    assert limiter.admit("10.0.0.1", NOW) is True


def test_fifteen_admitted_sixteenth_rejected():
    """Up to max_requests within the window are admitted; the next is not."""
    limiter = RateLimiter(window_ms=60_000, max_requests=15)
    for i in range(15):
        assert limiter.admit("10.0.0.1", NOW + i * 1000) is True
    assert limiter.admit("10.0.0.1", NOW + 15_000) is False


def test_burst_at_same_instant():
    """A burst of exactly max_requests at one instant all admit."""
    limiter = RateLimiter(window_ms=60_000, max_requests=15)
    assert all(limiter.admit("burst", NOW) for _ in range(15))
    assert limiter.admit("burst", NOW) is False


def test_rejection_does_not_consume_slot():
    """Rejected attempts are not recorded."""
    limiter = RateLimiter(window_ms=60_000, max_requests=1)
    assert limiter.admit("c", NOW) is True
    for _ in range(5):
        assert limiter.admit("c", NOW + 10_000) is False
    # Only the admitted timestamp counts, so the window reopens at NOW + 60s
    assert limiter.admit("c", NOW + 60_000) is True


def test_window_slides():
    """Admission resumes once the oldest timestamp leaves the window."""
    limiter = RateLimiter(window_ms=60_000, max_requests=2)
    assert limiter.admit("c", NOW) is True
    assert limiter.admit("c", NOW + 30_000) is True
    assert limiter.admit("c", NOW + 59_999) is False
    # The timestamp at NOW sits exactly on the window start and is dropped
    assert limiter.admit("c", NOW + 60_000) is True
    assert limiter.admit("c", NOW + 60_001) is False


def test_separate_clients_independent():
    """Different clients have independent windows."""
    limiter = RateLimiter(window_ms=60_000, max_requests=1)
    assert limiter.admit("a", NOW) is True
    assert limiter.admit("b", NOW) is True
    assert limiter.admit("a", NOW) is False
    assert limiter.admit("b", NOW) is False


def test_out_of_order_timestamps_filtered_by_value():
    """Expired timestamps are dropped even when recorded out of order."""
    limiter = RateLimiter(window_ms=60_000, max_requests=2)
    assert limiter.admit("c", NOW + 50_000) is True
    assert limiter.admit("c", NOW) is True
    # NOW has expired at NOW + 60_000, NOW + 50_000 has not
    assert limiter.remaining("c", NOW + 60_000) == 1


def test_remaining_count():
    """remaining() counts down as requests are admitted."""
    limiter = RateLimiter(window_ms=60_000, max_requests=3)
    assert limiter.remaining("c", NOW) == 3
    limiter.admit("c", NOW)
    assert limiter.remaining("c", NOW) == 2
    limiter.admit("c", NOW)
    limiter.admit("c", NOW)
    assert limiter.remaining("c", NOW) == 0


def test_retry_after_when_limited():
    """retry_after() reports seconds until the oldest slot frees up."""
    limiter = RateLimiter(window_ms=60_000, max_requests=1)
    limiter.admit("c", NOW)
    assert limiter.retry_after("c", NOW + 20_000) == 40


def test_retry_after_rounds_partial_seconds_up():
    """A wait of a fraction of a second past a whole second rounds up."""
    limiter = RateLimiter(window_ms=60_000, max_requests=1)
    limiter.admit("c", NOW)
    assert limiter.retry_after("c", NOW + 20_500) == 40
    assert limiter.retry_after("c", NOW + 59_999) == 1


def test_retry_after_burst_equals_window():
    """A full burst at one instant waits exactly the window length."""
    limiter = RateLimiter(window_ms=60_000, max_requests=15)
    for _ in range(15):
        limiter.admit("burst", NOW)
    assert limiter.retry_after("burst", NOW) == 60


def test_retry_after_when_not_limited():
    """retry_after() returns None while requests are still admitted."""
    limiter = RateLimiter(window_ms=60_000, max_requests=5)
    assert limiter.retry_after("c", NOW) is None
    limiter.admit("c", NOW)
    assert limiter.retry_after("c", NOW) is None
