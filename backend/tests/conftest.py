"""
Root pytest configuration for backend tests.

Provides:
- Shared fixtures (app, db_session, client) on in-memory SQLite
- scraping_config: active ScrapingConfig factory
- make_coordinator: coordinator wired to fakes (no sleeping, no Redis)
"""

import sys
from pathlib import Path

# Add backend directory to Python path so imports like
# `from scraping.coordinator import ...` and `from models import ...` work
backend_dir = Path(__file__).parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

import pytest
from unittest.mock import Mock
from sqlalchemy.pool import StaticPool


@pytest.fixture
def app(monkeypatch):
    """Create test Flask application backed by in-memory SQLite."""
    for name in ("REDIS_URL", "SCRAPER_RATE_LIMITS_PATH", "SCRAPER_MAX_PAGES",
                 "SCRAPER_MAX_CONSECUTIVE_ERRORS", "SCRAPER_EXISTING_THRESHOLD",
                 "SCRAPER_REQUESTS_PER_MINUTE", "SCRAPER_PAUSE_MS", "SCRAPER_TIMEOUT_MS"):
        monkeypatch.delenv(name, raising=False)

    from app import create_app
    from models.database import db

    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'SQLALCHEMY_ENGINE_OPTIONS': {
            'poolclass': StaticPool,
            'connect_args': {'check_same_thread': False},
        },
    })

    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def db_session(app):
    from models.database import db
    return db.session


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def make_coordinator(app, db_session):
    """Build a coordinator with fake fetchers, a queue sink and a no-op rate limiter."""
    from scraping.coordinator import ScrapeCoordinator
    from scraping.events import QueueEventSink

    def _make(fetchers=None, event_sink=None, rate_limiter=None, stores=None):
        return ScrapeCoordinator(
            db_session=db_session,
            event_sink=event_sink or QueueEventSink(),
            rate_limiter=rate_limiter or Mock(),
            fetchers=fetchers or {},
            stores=stores,
            app=app,
        )

    return _make


@pytest.fixture
def scraping_config(db_session):
    """Factory for an active ScrapingConfig row."""
    from models.scraping_config import ScrapingConfig

    def _make(**overrides):
        values = dict(name="test", is_active=True, pause_between_pages_ms=0)
        values.update(overrides)
        config = ScrapingConfig(**values)
        db_session.add(config)
        db_session.commit()
        return config

    return _make
