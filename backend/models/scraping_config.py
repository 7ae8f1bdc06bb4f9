"""
Scraping Config Model - Named configuration profiles for scraping runs.

At most one profile is active. The coordinator reads the active profile at
the start of every run; with no active profile it falls back to the
hard-coded defaults in scraping.settings.
"""
from datetime import datetime

from models.database import db


class ScrapingConfig(db.Model):
    __tablename__ = "scraping_configs"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)  # e.g. 'production', 'development'
    description = db.Column(db.Text)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    # Rate limiting
    requests_per_minute = db.Column(db.Integer, nullable=False, default=10)
    network_timeout_ms = db.Column(db.Integer, nullable=False, default=30_000)
    pause_between_pages_ms = db.Column(db.Integer, nullable=False, default=3_000)

    # Stop conditions
    consecutive_existing_threshold = db.Column(db.Integer, nullable=False, default=10)
    max_pages_per_session = db.Column(db.Integer, nullable=False, default=100)
    max_consecutive_errors = db.Column(db.Integer, nullable=False, default=3)
    batch_size = db.Column(db.Integer, nullable=False, default=50)

    # Feature flags
    manual_scraping_enabled = db.Column(db.Boolean, nullable=False, default=True)
    scheduled_scraping_enabled = db.Column(db.Boolean, nullable=False, default=True)
    real_time_progress_enabled = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.CheckConstraint("requests_per_minute > 0", name="scraping_configs_rpm_check"),
        db.CheckConstraint("max_pages_per_session > 0", name="scraping_configs_max_pages_check"),
        db.CheckConstraint("max_consecutive_errors > 0", name="scraping_configs_errors_check"),
    )

    @classmethod
    def get_active(cls):
        """Get the active profile, or None."""
        return cls.query.filter_by(is_active=True).order_by(cls.updated_at.desc()).first()

    def activate(self):
        """Make this the only active profile."""
        ScrapingConfig.query.filter(ScrapingConfig.id != self.id).update(
            {"is_active": False}, synchronize_session=False
        )
        self.is_active = True

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
            "requests_per_minute": self.requests_per_minute,
            "network_timeout_ms": self.network_timeout_ms,
            "pause_between_pages_ms": self.pause_between_pages_ms,
            "consecutive_existing_threshold": self.consecutive_existing_threshold,
            "max_pages_per_session": self.max_pages_per_session,
            "max_consecutive_errors": self.max_consecutive_errors,
            "batch_size": self.batch_size,
            "manual_scraping_enabled": self.manual_scraping_enabled,
            "scheduled_scraping_enabled": self.scheduled_scraping_enabled,
            "real_time_progress_enabled": self.real_time_progress_enabled,
        }

    def __repr__(self):
        return f"<ScrapingConfig {self.name} active={self.is_active}>"
