"""
Scraping Settings - Active configuration with hard-coded fallbacks.

Resolution order:
1. Active ScrapingConfig profile in the database
2. FALLBACK defaults below (logged as a warning)

Environment variables override individual values on top of either source:

    SCRAPER_MAX_PAGES: int
        Maximum pages processed in one session

    SCRAPER_MAX_CONSECUTIVE_ERRORS: int
        Failed fetches in a row before a session is marked failed

    SCRAPER_EXISTING_THRESHOLD: int
        Consecutive pre-existing records before a session stops early

    SCRAPER_REQUESTS_PER_MINUTE: int
    SCRAPER_PAUSE_MS: int
    SCRAPER_TIMEOUT_MS: int
"""
import logging
import os
from dataclasses import asdict, dataclass, replace
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScrapingSettings:
    """Immutable settings snapshot for one run."""
    name: str = "fallback"
    max_pages_per_session: int = 100
    max_consecutive_errors: int = 3
    consecutive_existing_threshold: int = 10
    requests_per_minute: int = 10
    pause_between_pages_ms: int = 3_000
    network_timeout_ms: int = 30_000
    batch_size: int = 50
    manual_scraping_enabled: bool = True
    scheduled_scraping_enabled: bool = True
    real_time_progress_enabled: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def scraping_enabled(self, scrape_type: str = "manual") -> bool:
        if scrape_type == "manual":
            return self.manual_scraping_enabled
        if scrape_type == "scheduled":
            return self.scheduled_scraping_enabled
        return False

    @classmethod
    def from_model(cls, config) -> "ScrapingSettings":
        """Build settings from a ScrapingConfig row."""
        return cls(
            name=config.name,
            max_pages_per_session=config.max_pages_per_session,
            max_consecutive_errors=config.max_consecutive_errors,
            consecutive_existing_threshold=config.consecutive_existing_threshold,
            requests_per_minute=config.requests_per_minute,
            pause_between_pages_ms=config.pause_between_pages_ms,
            network_timeout_ms=config.network_timeout_ms,
            batch_size=config.batch_size,
            manual_scraping_enabled=config.manual_scraping_enabled,
            scheduled_scraping_enabled=config.scheduled_scraping_enabled,
            real_time_progress_enabled=config.real_time_progress_enabled,
        )


FALLBACK = ScrapingSettings()

ENV_OVERRIDES = {
    "SCRAPER_MAX_PAGES": "max_pages_per_session",
    "SCRAPER_MAX_CONSECUTIVE_ERRORS": "max_consecutive_errors",
    "SCRAPER_EXISTING_THRESHOLD": "consecutive_existing_threshold",
    "SCRAPER_REQUESTS_PER_MINUTE": "requests_per_minute",
    "SCRAPER_PAUSE_MS": "pause_between_pages_ms",
    "SCRAPER_TIMEOUT_MS": "network_timeout_ms",
}


def apply_env_overrides(settings: ScrapingSettings) -> ScrapingSettings:
    """Override individual values from SCRAPER_* environment variables."""
    changes = {}
    for env_name, field_name in ENV_OVERRIDES.items():
        raw = os.environ.get(env_name)
        if raw is None or raw == "":
            continue
        try:
            changes[field_name] = int(raw)
        except ValueError:
            logger.warning(f"Ignoring invalid {env_name}={raw!r} (expected integer)")
    return replace(settings, **changes) if changes else settings


def load_scraping_settings(db_session=None) -> ScrapingSettings:
    """
    Load the active scraping configuration.

    Never raises: a missing profile or a failing query falls back to the
    defaults so a run can always start.

    Args:
        db_session: Optional SQLAlchemy session (defaults to the
                    Flask-SQLAlchemy scoped session)

    Returns:
        ScrapingSettings snapshot
    """
    from models.scraping_config import ScrapingConfig

    try:
        if db_session is not None:
            config = db_session.query(ScrapingConfig).filter_by(
                is_active=True
            ).order_by(ScrapingConfig.updated_at.desc()).first()
        else:
            config = ScrapingConfig.get_active()
    except Exception as e:
        logger.error(f"Failed to load scraping configuration: {e}, using fallback values")
        if db_session is not None:
            db_session.rollback()
        return apply_env_overrides(FALLBACK)

    if config is None:
        logger.warning("No active scraping configuration found, using fallback values")
        return apply_env_overrides(FALLBACK)

    logger.debug(f"Loaded active scraping configuration: {config.name}")
    return apply_env_overrides(ScrapingSettings.from_model(config))


def effective_max_pages(settings: ScrapingSettings, requested: Optional[int]) -> int:
    """Page budget for a run: the smaller of the request and the config cap."""
    if requested is None:
        return settings.max_pages_per_session
    return min(requested, settings.max_pages_per_session)
