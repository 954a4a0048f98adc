"""
Rate limiting utilities for Weather Chat.

Keeps a user from flooding the agent with messages: at most N sends per
rolling time window.
"""

import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque


def _validate_rate_limit_params(max_requests: int, window_seconds: float) -> None:
    """Validate rate limiter numeric parameters."""
    if max_requests <= 0:
        raise ValueError("max_requests must be greater than 0")
    if window_seconds <= 0:
        raise ValueError("window_seconds must be greater than 0")


@dataclass
class RateLimitConfig:
    """
    Rate limit configuration.

    Attributes:
        max_requests: Sends allowed inside one window
        window_seconds: Length of the rolling window
        enabled: Whether rate limiting is active
    """

    max_requests: int = 10
    window_seconds: float = 60.0
    enabled: bool = True

    def __post_init__(self) -> None:
        _validate_rate_limit_params(
            max_requests=self.max_requests,
            window_seconds=self.window_seconds,
        )


class MessageRateLimiter:
    """
    Sliding-window rate limiter.

    Usage:
        limiter = MessageRateLimiter(max_requests=10, window_seconds=60)
        if not limiter.is_allowed():
            wait = limiter.remaining_time()

    Thread-safe.
    """

    def __init__(
        self,
        max_requests: int = 10,
        window_seconds: float = 60.0,
        enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize rate limiter.

        Args:
            max_requests: Sends allowed per window
            window_seconds: Rolling window length in seconds
            enabled: Whether limiting is active
            clock: Monotonic time source in seconds
        """
        _validate_rate_limit_params(
            max_requests=max_requests,
            window_seconds=window_seconds,
        )
        self._max_requests = max_requests
        self._window = window_seconds
        self._enabled = enabled
        self._clock = clock

        self._requests: Deque[float] = deque()
        self._lock = threading.Lock()

        # Stats
        self._total_requests = 0
        self._rejected_count = 0

    @classmethod
    def from_config(cls, config: RateLimitConfig) -> "MessageRateLimiter":
        return cls(
            max_requests=config.max_requests,
            window_seconds=config.window_seconds,
            enabled=config.enabled,
        )

    @property
    def is_enabled(self) -> bool:
        """Check if rate limiting is enabled."""
        return self._enabled

    @property
    def max_requests(self) -> int:
        return self._max_requests

    @property
    def window_seconds(self) -> float:
        return self._window

    def _expire(self, now: float) -> None:
        while self._requests and now - self._requests[0] >= self._window:
            self._requests.popleft()

    def is_allowed(self) -> bool:
        """
        Record a send if the window has room.

        Returns:
            True if the send may proceed, False if rate limited
        """
        if not self._enabled:
            return True

        with self._lock:
            now = self._clock()
            self._expire(now)
            if len(self._requests) < self._max_requests:
                self._requests.append(now)
                self._total_requests += 1
                return True
            self._rejected_count += 1
            return False

    def remaining_time(self) -> float:
        """
        Seconds until the oldest send in the window expires.

        Returns:
            0.0 when the window is empty or limiting is disabled
        """
        if not self._enabled:
            return 0.0

        with self._lock:
            now = self._clock()
            self._expire(now)
            if not self._requests:
                return 0.0
            return max(0.0, self._window - (now - self._requests[0]))

    def get_stats(self) -> dict:
        """
        Get rate limiter statistics.

        Returns:
            Dictionary with:
                - total_requests: Sends that were allowed
                - rejected_count: Sends that were rate limited
                - in_window: Sends currently inside the window
                - enabled: Whether limiting is active
        """
        with self._lock:
            self._expire(self._clock())
            return {
                "total_requests": self._total_requests,
                "rejected_count": self._rejected_count,
                "in_window": len(self._requests),
                "enabled": self._enabled,
            }

    def reset(self) -> None:
        """Reset rate limiter to initial state."""
        with self._lock:
            self._requests.clear()
            self._total_requests = 0
            self._rejected_count = 0

    def set_enabled(self, enabled: bool) -> None:
        """Enable or disable rate limiting."""
        self._enabled = enabled
