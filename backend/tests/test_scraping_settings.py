"""
Tests for scraping settings resolution

Tests active profile loading, fallback defaults and SCRAPER_* overrides.
"""

import logging
from unittest.mock import Mock

from models.scraping_config import ScrapingConfig
from scraping.settings import (
    FALLBACK,
    ScrapingSettings,
    apply_env_overrides,
    effective_max_pages,
    load_scraping_settings,
)


# =============================================================================
# Loading Tests
# =============================================================================

class TestLoadSettings:
    """Tests for load_scraping_settings()."""

    def test_fallback_when_no_profile(self, db_session, caplog):
        with caplog.at_level(logging.WARNING, logger="scraping.settings"):
            settings = load_scraping_settings(db_session)

        assert settings == FALLBACK
        assert settings.name == "fallback"
        assert "using fallback values" in caplog.text

    def test_active_profile(self, db_session, scraping_config):
        scraping_config(name="production", max_pages_per_session=25, consecutive_existing_threshold=4)

        settings = load_scraping_settings(db_session)

        assert settings.name == "production"
        assert settings.max_pages_per_session == 25
        assert settings.consecutive_existing_threshold == 4
        assert settings.pause_between_pages_ms == 0

    def test_inactive_profile_ignored(self, db_session, scraping_config):
        scraping_config(name="old", is_active=False, max_pages_per_session=1)
        assert load_scraping_settings(db_session) == FALLBACK

    def test_scoped_session_default(self, app, scraping_config):
        scraping_config(name="scoped")
        assert load_scraping_settings().name == "scoped"

    def test_query_failure_falls_back(self, monkeypatch):
        monkeypatch.delenv("SCRAPER_MAX_PAGES", raising=False)
        session = Mock()
        session.query.side_effect = RuntimeError("database unavailable")

        settings = load_scraping_settings(session)

        assert settings == FALLBACK
        session.rollback.assert_called_once()

    def test_activate_keeps_single_profile(self, db_session, scraping_config):
        first = scraping_config(name="first")
        second = scraping_config(name="second", is_active=False)

        second.activate()
        db_session.commit()

        assert ScrapingConfig.get_active() is second
        assert first.is_active is False


# =============================================================================
# Environment Override Tests
# =============================================================================

class TestEnvOverrides:
    """SCRAPER_* environment variables."""

    def test_override_applied(self, monkeypatch):
        monkeypatch.setenv("SCRAPER_MAX_PAGES", "7")
        monkeypatch.setenv("SCRAPER_PAUSE_MS", "0")

        settings = apply_env_overrides(FALLBACK)

        assert settings.max_pages_per_session == 7
        assert settings.pause_between_pages_ms == 0
        assert settings.max_consecutive_errors == FALLBACK.max_consecutive_errors

    def test_invalid_override_ignored(self, monkeypatch, caplog):
        monkeypatch.setenv("SCRAPER_MAX_CONSECUTIVE_ERRORS", "many")

        settings = apply_env_overrides(FALLBACK)

        assert settings.max_consecutive_errors == FALLBACK.max_consecutive_errors
        assert "SCRAPER_MAX_CONSECUTIVE_ERRORS" in caplog.text

    def test_override_on_top_of_profile(self, db_session, scraping_config, monkeypatch):
        scraping_config(name="production", max_pages_per_session=25)
        monkeypatch.setenv("SCRAPER_MAX_PAGES", "3")

        assert load_scraping_settings(db_session).max_pages_per_session == 3


# =============================================================================
# Helper Tests
# =============================================================================

class TestHelpers:
    """Settings helpers."""

    def test_effective_max_pages(self):
        settings = ScrapingSettings(max_pages_per_session=20)

        assert effective_max_pages(settings, 5) == 5
        assert effective_max_pages(settings, 50) == 20
        assert effective_max_pages(settings, None) == 20

    def test_scraping_enabled(self):
        settings = ScrapingSettings(manual_scraping_enabled=False)

        assert settings.scraping_enabled("manual") is False
        assert settings.scraping_enabled("scheduled") is True
        assert settings.scraping_enabled("bulk") is False

    def test_from_model_round_trip(self, scraping_config):
        config = scraping_config(name="profile", requests_per_minute=4)
        settings = ScrapingSettings.from_model(config)

        assert settings.to_dict()["requests_per_minute"] == 4
        assert settings.to_dict()["name"] == "profile"
