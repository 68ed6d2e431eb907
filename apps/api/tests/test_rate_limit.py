"""Tests for the fixed-window rate limiter."""
from __future__ import annotations

import pytest

from app.core.errors import RateLimitExceeded
from app.services.rate_limit import RateLimiter, client_key_from_forwarded


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_admits_up_to_quota_then_rejects():
    limiter = RateLimiter(window_seconds=600, max_requests=3, clock=FakeClock())

    for _ in range(3):
        limiter.admit("10.0.0.1")

    with pytest.raises(RateLimitExceeded):
        limiter.admit("10.0.0.1")
    assert limiter.entry("10.0.0.1").count == 3


def test_admission_resets_after_window_elapses():
    clock = FakeClock()
    limiter = RateLimiter(window_seconds=600, max_requests=2, clock=clock)
    limiter.admit("client")
    limiter.admit("client")

    clock.now += 600
    with pytest.raises(RateLimitExceeded):
        limiter.admit("client")

    clock.now += 1
    limiter.admit("client")

    entry = limiter.entry("client")
    assert entry.count == 1
    assert entry.window_start == clock.now


def test_window_is_fixed_not_sliding():
    clock = FakeClock()
    limiter = RateLimiter(window_seconds=600, max_requests=5, clock=clock)
    limiter.admit("client")
    clock.now += 300
    limiter.admit("client")

    assert limiter.entry("client").window_start == 1000.0


def test_clients_have_independent_budgets():
    limiter = RateLimiter(window_seconds=600, max_requests=1, clock=FakeClock())
    limiter.admit("a")

    limiter.admit("b")
    with pytest.raises(RateLimitExceeded):
        limiter.admit("a")


def test_stale_entries_are_purged_on_admit():
    clock = FakeClock()
    limiter = RateLimiter(window_seconds=60, max_requests=10, clock=clock)
    limiter.admit("a")
    limiter.admit("b")
    assert len(limiter) == 2

    clock.now += 61
    limiter.admit("c")

    assert len(limiter) == 1
    assert limiter.entry("a") is None


@pytest.mark.parametrize(
    ("header", "expected"),
    [
        (None, "unknown"),
        ("", "unknown"),
        ("   ", "unknown"),
        ("203.0.113.7", "203.0.113.7"),
        ("203.0.113.7, 10.0.0.1", "203.0.113.7"),
    ],
)
def test_client_key_from_forwarded(header, expected):
    assert client_key_from_forwarded(header) == expected
