"""
Tests for the Scraper Rate Limiter

Tests delay calculation, YAML overrides and the sliding window. Time is
replaced with a fake clock so nothing actually sleeps.
"""

import pytest
from unittest.mock import Mock, patch

from scraping.rate_limiter import ScraperRateLimiter
from scraping.settings import FALLBACK, ScrapingSettings


class FakeClock:
    """Stands in for the time module: sleep() advances time()."""

    def __init__(self, start=1_000.0):
        self.now = start
        self.sleeps = []

    def time(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock():
    clock = FakeClock()
    with patch("scraping.rate_limiter.time", clock):
        yield clock


@pytest.fixture
def limits_file(tmp_path):
    path = tmp_path / "limits.yaml"
    path.write_text(
        "defaults:\n"
        "  requests_per_minute: 12\n"
        "  pause_between_pages_ms: 100\n"
        "agencies:\n"
        "  hse:\n"
        "    requests_per_minute: 3\n"
        "  environment_agency:\n"
        "    pause_between_pages_ms: 0\n"
    )
    return str(path)


def fast_settings(**overrides):
    values = dict(requests_per_minute=6, pause_between_pages_ms=0)
    values.update(overrides)
    return ScrapingSettings(**values)


# =============================================================================
# Delay Calculation Tests
# =============================================================================

class TestCalculateDelay:
    """Tests for calculate_delay_ms()."""

    def test_pause_only(self):
        assert ScraperRateLimiter.calculate_delay_ms(
            {"requests_per_minute": 10, "pause_between_pages_ms": 3000}
        ) == 3000

    def test_low_rate_adds_extra_delay(self):
        """At <= 5 rpm the total delay is at least one request's share of a minute."""
        assert ScraperRateLimiter.calculate_delay_ms(
            {"requests_per_minute": 5, "pause_between_pages_ms": 3000}
        ) == 12000
        assert ScraperRateLimiter.calculate_delay_ms(
            {"requests_per_minute": 2, "pause_between_pages_ms": 0}
        ) == 30000

    def test_long_pause_not_extended(self):
        assert ScraperRateLimiter.calculate_delay_ms(
            {"requests_per_minute": 5, "pause_between_pages_ms": 20000}
        ) == 20000


# =============================================================================
# Limit Resolution Tests
# =============================================================================

class TestLimits:
    """Run settings, YAML defaults and agency overrides."""

    def test_settings_win_over_yaml_defaults(self, limits_file):
        limiter = ScraperRateLimiter(limits_file, redis_url="")
        limits = limiter._get_limits("other", fast_settings(requests_per_minute=30))
        assert limits == {"requests_per_minute": 30, "pause_between_pages_ms": 0}

    def test_agency_override_wins(self, limits_file):
        limiter = ScraperRateLimiter(limits_file, redis_url="")
        limits = limiter._get_limits("hse", fast_settings(requests_per_minute=30))
        assert limits["requests_per_minute"] == 3
        assert limits["pause_between_pages_ms"] == 0

    def test_yaml_defaults_without_settings(self, limits_file):
        limiter = ScraperRateLimiter(limits_file, redis_url="")
        assert limiter._get_limits("other") == {"requests_per_minute": 12, "pause_between_pages_ms": 100}

    def test_missing_config_uses_fallback(self, tmp_path):
        limiter = ScraperRateLimiter(str(tmp_path / "missing.yaml"), redis_url="")
        assert limiter._get_limits("hse") == {
            "requests_per_minute": FALLBACK.requests_per_minute,
            "pause_between_pages_ms": FALLBACK.pause_between_pages_ms,
        }

    def test_env_config_path(self, limits_file, monkeypatch):
        monkeypatch.setenv("SCRAPER_RATE_LIMITS_PATH", limits_file)
        assert ScraperRateLimiter(redis_url="").config_path == limits_file

    def test_bundled_config_loads(self, monkeypatch):
        monkeypatch.delenv("SCRAPER_RATE_LIMITS_PATH", raising=False)
        limiter = ScraperRateLimiter(redis_url="")
        assert "hse" in limiter.config["agencies"]

    def test_rate_limit_info(self, limits_file):
        info = ScraperRateLimiter(limits_file, redis_url="").get_rate_limit_info("hse")

        assert info["requests_per_minute"] == 3
        assert info["pause_between_pages_ms"] == 100
        assert info["estimated_delay_per_request_ms"] == 20000
        assert info["backend"] == "memory"


# =============================================================================
# Wait Tests (memory backend)
# =============================================================================

class TestWaitMemory:
    """Pause + in-memory sliding window."""

    def test_sleeps_configured_pause(self, clock, tmp_path):
        limiter = ScraperRateLimiter(str(tmp_path / "none.yaml"), redis_url="")
        limiter.wait("other", fast_settings(requests_per_minute=60, pause_between_pages_ms=250))
        assert clock.sleeps == [0.25]

    def test_no_pause_no_sleep(self, clock, tmp_path):
        limiter = ScraperRateLimiter(str(tmp_path / "none.yaml"), redis_url="")
        limiter.wait("other", fast_settings())
        assert clock.sleeps == []

    def test_window_blocks_until_oldest_expires(self, clock, tmp_path):
        limiter = ScraperRateLimiter(str(tmp_path / "none.yaml"), redis_url="")
        settings = fast_settings()

        for _ in range(6):
            limiter.wait("other", settings)
        assert clock.sleeps == []

        limiter.wait("other", settings)
        assert clock.sleeps == [60.0]

    def test_agencies_have_separate_windows(self, clock, tmp_path):
        limiter = ScraperRateLimiter(str(tmp_path / "none.yaml"), redis_url="")
        settings = fast_settings()

        for _ in range(6):
            limiter.wait("hse", settings)
        limiter.wait("environment_agency", settings)

        assert clock.sleeps == []

    def test_status(self, clock, tmp_path):
        limiter = ScraperRateLimiter(str(tmp_path / "none.yaml"), redis_url="")
        settings = fast_settings()
        for _ in range(6):
            limiter.wait("hse", settings)

        status = limiter.get_status("hse", settings)

        assert status["minute"] == {"current": 6, "limit": 6}
        assert status["is_allowed"] is False


# =============================================================================
# Wait Tests (redis backend)
# =============================================================================

class TestWaitRedis:
    """Redis-backed window."""

    def make_redis(self, counts):
        client = Mock()
        pipe = Mock()
        client.pipeline.return_value = pipe
        pipe.execute.side_effect = counts
        return client, pipe

    def test_records_request_in_window(self, clock, tmp_path):
        client, pipe = self.make_redis([[0, 0], [1, True]])
        with patch("redis.from_url", return_value=client):
            limiter = ScraperRateLimiter(str(tmp_path / "none.yaml"), redis_url="redis://localhost:6379/0")
            limiter.wait("hse", fast_settings())

        pipe.zadd.assert_called_once()
        assert pipe.zadd.call_args[0][0] == "scrape:hse:minute"
        assert limiter.get_rate_limit_info("hse")["backend"] == "redis"

    def test_full_window_times_out(self, clock, tmp_path):
        client = Mock()
        pipe = Mock()
        client.pipeline.return_value = pipe
        pipe.execute.return_value = [0, 6]
        with patch("redis.from_url", return_value=client):
            limiter = ScraperRateLimiter(str(tmp_path / "none.yaml"), redis_url="redis://localhost:6379/0")
            with pytest.raises(RuntimeError, match="Rate limit wait timeout"):
                limiter.wait("hse", fast_settings())

        assert len(clock.sleeps) == 60

    def test_unreachable_redis_falls_back_to_memory(self, clock, tmp_path):
        client = Mock()
        client.ping.side_effect = ConnectionError("refused")
        with patch("redis.from_url", return_value=client):
            limiter = ScraperRateLimiter(str(tmp_path / "none.yaml"), redis_url="redis://localhost:6379/0")
            limiter.wait("hse", fast_settings())

        assert limiter.redis is None
        assert limiter.get_status("hse", fast_settings())["minute"]["current"] == 1
