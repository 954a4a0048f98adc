"""Tests for weather_chat.utils.rate_limit module."""

import pytest

from weather_chat.utils.rate_limit import MessageRateLimiter, RateLimitConfig


class FakeTime:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def fake_time():
    return FakeTime()


class TestRateLimitConfig:
    """Tests for RateLimitConfig dataclass."""

    def test_default_values(self):
        """Should allow ten messages per minute."""
        cfg = RateLimitConfig()
        assert cfg.max_requests == 10
        assert cfg.window_seconds == 60.0
        assert cfg.enabled is True

    @pytest.mark.parametrize("kwargs", [{"max_requests": 0}, {"window_seconds": 0}, {"window_seconds": -1}])
    def test_invalid_values(self, kwargs):
        """Should reject non-positive limits."""
        with pytest.raises(ValueError):
            RateLimitConfig(**kwargs)


class TestMessageRateLimiter:
    """Tests for the sliding-window limiter."""

    def test_allows_up_to_limit(self, fake_time):
        limiter = MessageRateLimiter(max_requests=2, window_seconds=10, clock=fake_time)
        assert limiter.is_allowed() is True
        assert limiter.is_allowed() is True
        assert limiter.is_allowed() is False

    def test_window_slides(self, fake_time):
        limiter = MessageRateLimiter(max_requests=2, window_seconds=10, clock=fake_time)
        limiter.is_allowed()
        fake_time.now += 4
        limiter.is_allowed()
        assert limiter.is_allowed() is False

        fake_time.now += 6  # first send leaves the window
        assert limiter.is_allowed() is True
        assert limiter.is_allowed() is False

    def test_remaining_time(self, fake_time):
        limiter = MessageRateLimiter(max_requests=1, window_seconds=10, clock=fake_time)
        assert limiter.remaining_time() == 0.0
        limiter.is_allowed()
        fake_time.now += 3
        assert limiter.remaining_time() == pytest.approx(7.0)

    def test_disabled_always_allows(self, fake_time):
        limiter = MessageRateLimiter(max_requests=1, enabled=False, clock=fake_time)
        assert all(limiter.is_allowed() for _ in range(5))
        assert limiter.remaining_time() == 0.0

    def test_set_enabled(self, fake_time):
        limiter = MessageRateLimiter(max_requests=1, clock=fake_time)
        limiter.is_allowed()
        limiter.set_enabled(False)
        assert limiter.is_allowed() is True
        assert limiter.is_enabled is False

    def test_get_stats(self, fake_time):
        limiter = MessageRateLimiter(max_requests=1, window_seconds=10, clock=fake_time)
        limiter.is_allowed()
        limiter.is_allowed()
        assert limiter.get_stats() == {
            "total_requests": 1,
            "rejected_count": 1,
            "in_window": 1,
            "enabled": True,
        }

    def test_reset(self, fake_time):
        limiter = MessageRateLimiter(max_requests=1, clock=fake_time)
        limiter.is_allowed()
        limiter.reset()
        assert limiter.is_allowed() is True
        assert limiter.get_stats()["total_requests"] == 1

    def test_from_config(self):
        limiter = MessageRateLimiter.from_config(RateLimitConfig(max_requests=3, window_seconds=5))
        assert limiter.max_requests == 3
        assert limiter.window_seconds == 5

    def test_invalid_params(self):
        with pytest.raises(ValueError):
            MessageRateLimiter(max_requests=0)
