"""
Scraper Rate Limiter - Agency-keyed pacing for outbound fetches.

Pure timing gate: no retries, no content inspection.

Before every fetch:
1. Sleep the configured pause (pause_between_pages_ms)
2. If requests_per_minute is very low (<= 5), add extra delay so the
   pause alone keeps the pace under the ceiling
3. Enforce a sliding one-minute window per agency

The window lives in Redis when REDIS_URL is set (shared across processes),
otherwise in memory behind a lock (shared across runs in this process).

Per-agency overrides are read from config/scraper_rate_limits.yaml.
Key format: scrape:{agency}
"""
import logging
import os
import threading
import time
from collections import defaultdict
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .settings import FALLBACK, ScrapingSettings

logger = logging.getLogger(__name__)

REDIS_URL = os.environ.get("REDIS_URL")

LOW_RATE_THRESHOLD = 5
WINDOW_SECONDS = 60


class ScraperRateLimiter:
    """Rate limiter for enforcement scraping with agency granularity."""

    def __init__(self, config_path: Optional[str] = None, redis_url: Optional[str] = None):
        """
        Initialize rate limiter.

        Args:
            config_path: Path to YAML overrides.
                        Defaults to backend/config/scraper_rate_limits.yaml
            redis_url: Redis URL for the shared window (defaults to REDIS_URL)
        """
        self.config_path = (
            config_path
            or os.environ.get("SCRAPER_RATE_LIMITS_PATH")
            or self._default_config_path()
        )
        self.redis_url = redis_url if redis_url is not None else REDIS_URL
        self._config = None
        self._redis = None
        self._lock = threading.Lock()
        self._memory_store: Dict[str, list] = defaultdict(list)

    def _default_config_path(self) -> str:
        return str(Path(__file__).parent.parent / "config" / "scraper_rate_limits.yaml")

    @property
    def config(self) -> Dict[str, Any]:
        """Load YAML overrides (cached)."""
        if self._config is None:
            self._config = self._load_config()
        return self._config

    def _load_config(self) -> Dict[str, Any]:
        try:
            with open(self.config_path, "r") as f:
                config = yaml.safe_load(f) or {}
                logger.info(f"Loaded rate limits from {self.config_path}")
                return config
        except FileNotFoundError:
            logger.warning(
                f"Rate limit config not found at {self.config_path}, using defaults"
            )
            return {"defaults": {}, "agencies": {}}

    @property
    def redis(self):
        """Get Redis client (lazy init)."""
        if self._redis is None and self.redis_url:
            try:
                import redis
                self._redis = redis.from_url(self.redis_url)
                self._redis.ping()
                logger.info("Scraper rate limiter using Redis")
            except Exception as e:
                logger.warning(f"Failed to connect to Redis: {e}")
                self._redis = False  # Sentinel to prevent retries
        return self._redis if self._redis else None

    def _get_limits(
        self, agency: str, settings: Optional[ScrapingSettings] = None
    ) -> Dict[str, int]:
        """
        Resolve limits for an agency.

        Run settings win over the YAML defaults; a YAML agency entry wins
        over both.
        """
        defaults = self.config.get("defaults", {}) or {}
        agency_config = (self.config.get("agencies", {}) or {}).get(agency, {}) or {}

        if settings is not None:
            limits = {
                "requests_per_minute": settings.requests_per_minute,
                "pause_between_pages_ms": settings.pause_between_pages_ms,
            }
        else:
            limits = {
                "requests_per_minute": defaults.get(
                    "requests_per_minute", FALLBACK.requests_per_minute
                ),
                "pause_between_pages_ms": defaults.get(
                    "pause_between_pages_ms", FALLBACK.pause_between_pages_ms
                ),
            }

        for key in limits:
            if key in agency_config:
                limits[key] = agency_config[key]

        if limits["requests_per_minute"] <= 0:
            limits["requests_per_minute"] = FALLBACK.requests_per_minute
        return limits

    @staticmethod
    def calculate_delay_ms(limits: Dict[str, int]) -> int:
        """Pause before a request, including extra delay for low ceilings."""
        pause = max(limits["pause_between_pages_ms"], 0)
        rpm = limits["requests_per_minute"]
        extra = 0
        if rpm <= LOW_RATE_THRESHOLD:
            extra = max(0, 60_000 // rpm - pause)
        return pause + extra

    def _make_key(self, agency: str) -> str:
        return f"scrape:{agency}"

    def wait(self, agency: str = "default", settings: Optional[ScrapingSettings] = None):
        """
        Block until a request to this agency is allowed, then record it.

        Args:
            agency: Agency being scraped
            settings: Run settings (pause and requests-per-minute)
        """
        limits = self._get_limits(agency, settings)

        delay_ms = self.calculate_delay_ms(limits)
        if delay_ms > 0:
            logger.debug(f"Pausing {delay_ms}ms before {agency} request")
            time.sleep(delay_ms / 1000)

        if self.redis:
            self._wait_redis(agency, limits)
        else:
            self._wait_memory(agency, limits)

    def _wait_redis(self, agency: str, limits: Dict[str, int]):
        """Redis-backed sliding window."""
        minute_key = f"{self._make_key(agency)}:minute"

        max_attempts = 60
        attempt = 0

        while attempt < max_attempts:
            now = time.time()

            pipe = self.redis.pipeline()
            pipe.zremrangebyscore(minute_key, 0, now - WINDOW_SECONDS)
            pipe.zcard(minute_key)
            results = pipe.execute()

            if results[1] < limits["requests_per_minute"]:
                pipe = self.redis.pipeline()
                pipe.zadd(minute_key, {str(now): now})
                pipe.expire(minute_key, WINDOW_SECONDS * 2)
                pipe.execute()
                return

            wait_time = WINDOW_SECONDS / limits["requests_per_minute"]
            logger.debug(f"Rate limited for {agency}, waiting {wait_time:.1f}s")
            time.sleep(wait_time)
            attempt += 1

        raise RuntimeError(f"Rate limit wait timeout for {agency}")

    def _wait_memory(self, agency: str, limits: Dict[str, int]):
        """In-memory sliding window, safe across concurrent runs."""
        key = self._make_key(agency)

        while True:
            with self._lock:
                now = time.time()
                self._memory_store[key] = [
                    t for t in self._memory_store[key] if now - t < WINDOW_SECONDS
                ]
                window = self._memory_store[key]
                if len(window) < limits["requests_per_minute"]:
                    window.append(now)
                    return
                wait_time = WINDOW_SECONDS - (now - window[0])

            # Sleep outside the lock so other agencies are not blocked
            logger.debug(f"Rate limited for {agency}, waiting {wait_time:.1f}s (memory)")
            time.sleep(max(wait_time, 0.01))

    def get_status(self, agency: str, settings: Optional[ScrapingSettings] = None) -> Dict:
        """Current window usage for an agency."""
        limits = self._get_limits(agency, settings)
        key = self._make_key(agency)
        now = time.time()

        if self.redis:
            minute_key = f"{key}:minute"
            self.redis.zremrangebyscore(minute_key, 0, now - WINDOW_SECONDS)
            minute_count = self.redis.zcard(minute_key)
        else:
            with self._lock:
                minute_count = len([
                    t for t in self._memory_store[key] if now - t < WINDOW_SECONDS
                ])

        return {
            "agency": agency,
            "minute": {
                "current": minute_count,
                "limit": limits["requests_per_minute"],
            },
            "is_allowed": minute_count < limits["requests_per_minute"],
        }

    def get_rate_limit_info(self, agency: str = "default", settings: Optional[ScrapingSettings] = None) -> Dict:
        """Effective limits and the estimated delay per request."""
        limits = self._get_limits(agency, settings)
        return {
            "agency": agency,
            "requests_per_minute": limits["requests_per_minute"],
            "pause_between_pages_ms": limits["pause_between_pages_ms"],
            "estimated_delay_per_request_ms": self.calculate_delay_ms(limits),
            "backend": "redis" if self.redis else "memory",
        }


# Global instance (lazy init)
_rate_limiter = None
_rate_limiter_lock = threading.Lock()


def get_scraper_rate_limiter() -> ScraperRateLimiter:
    """Get the process-wide rate limiter instance."""
    global _rate_limiter
    with _rate_limiter_lock:
        if _rate_limiter is None:
            _rate_limiter = ScraperRateLimiter()
    return _rate_limiter
