"""Token bucket rate limiter shared by the Pivotal and Trello clients."""

from __future__ import annotations

import threading
import time
from typing import Any


class RateLimiter:
    """Token bucket rate limiter for API requests

    Tokens refill at a constant rate up to ``burst_allowance``; each request
    consumes one. This keeps a long import under the remote API's sustained
    limit, while HTTP 429 responses that still slip through are handled as
    transient errors by the RetryExecutor.
    """

    def __init__(self, requests_per_second: float, burst_allowance: int = 5):
        """
        Args:
            requests_per_second: Sustained rate (tokens added per second)
            burst_allowance: Bucket capacity (largest burst allowed)
        """
        self.rate = requests_per_second
        self.burst_allowance = burst_allowance
        self.tokens = float(burst_allowance)
        self.last_update = time.monotonic()
        self._lock = threading.Lock()

    def _refill(self, now: float) -> None:
        elapsed = now - self.last_update
        self.tokens = min(float(self.burst_allowance), self.tokens + elapsed * self.rate)
        self.last_update = now

    def acquire(self, timeout: float = 5.0) -> bool:
        """
        Wait for a token

        Args:
            timeout: Maximum time to wait for a token (seconds)

        Returns:
            True if a token was consumed, False if the timeout expired first
        """
        deadline = time.monotonic() + timeout

        while True:
            with self._lock:
                self._refill(time.monotonic())
                if self.tokens >= 1.0:
                    self.tokens -= 1.0
                    return True
                # Time until the next whole token, if the bucket refills at all
                wait = (1.0 - self.tokens) / self.rate if self.rate > 0 else timeout

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            time.sleep(min(wait, remaining, 0.05))

    def get_status(self) -> dict[str, Any]:
        """Get current rate limiter status for debugging"""
        with self._lock:
            return {
                "available_tokens": self.tokens,
                "max_tokens": self.burst_allowance,
                "rate_per_second": self.rate,
                "utilization_percent": (1 - self.tokens / self.burst_allowance) * 100,
            }
