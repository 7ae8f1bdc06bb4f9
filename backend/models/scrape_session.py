"""
Scrape Session Model - Durable record of one scraping run.

Tracks:
- Run lifecycle (pending -> running -> completed/failed/stopped)
- Cursor (current page, or the date range for date-based agencies)
- Counters (found, created, updated, existing, failed, errors)
- Parameter snapshot for reproducibility

Every mutation is a small delta applied to the current state. The
coordinator commits after each one so observers see per-record progress.
"""
from datetime import datetime
from uuid import uuid4

from models.database import db
from scraping.errors import InvalidSessionTransition
from scraping.results import Outcome


PENDING = "pending"
RUNNING = "running"
COMPLETED = "completed"
FAILED = "failed"
STOPPED = "stopped"

STATUSES = (PENDING, RUNNING, COMPLETED, FAILED, STOPPED)
TERMINAL_STATUSES = frozenset({COMPLETED, FAILED, STOPPED})

ALLOWED_TRANSITIONS = {
    PENDING: frozenset({RUNNING, FAILED, STOPPED}),
    RUNNING: frozenset({COMPLETED, FAILED, STOPPED}),
    COMPLETED: frozenset(),
    FAILED: frozenset(),
    STOPPED: frozenset(),
}


def generate_session_id() -> str:
    return uuid4().hex[:16]


class ScrapeSession(db.Model):
    """One scraping run for an (agency, record_type) pair."""

    __tablename__ = "scrape_sessions"

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(
        db.String(32),
        unique=True,
        nullable=False,
        default=generate_session_id,
        index=True,
    )

    agency = db.Column(db.String(50), nullable=False, index=True)
    record_type = db.Column(db.String(20), nullable=False)  # case, notice

    status = db.Column(db.String(20), nullable=False, default=PENDING, index=True)
    stop_reason = db.Column(db.String(50))
    error_message = db.Column(db.Text)

    # Cursor
    start_page = db.Column(db.Integer)
    max_pages = db.Column(db.Integer)
    current_page = db.Column(db.Integer)
    date_from = db.Column(db.Date)
    date_to = db.Column(db.Date)
    pages_processed = db.Column(db.Integer, nullable=False, default=0)

    # Counters
    records_total = db.Column(db.Integer, nullable=False, default=0)  # announced by fetches
    records_found = db.Column(db.Integer, nullable=False, default=0)
    records_created = db.Column(db.Integer, nullable=False, default=0)
    records_updated = db.Column(db.Integer, nullable=False, default=0)
    records_existing = db.Column(db.Integer, nullable=False, default=0)
    records_failed = db.Column(db.Integer, nullable=False, default=0)
    errors_count = db.Column(db.Integer, nullable=False, default=0)  # record + fetch failures

    # Streaks for stop conditions (reset, so not monotonic)
    consecutive_existing = db.Column(db.Integer, nullable=False, default=0)
    existing_batches = db.Column(db.Integer, nullable=False, default=0)

    params = db.Column(db.JSON, nullable=False, default=dict)
    triggered_by = db.Column(db.String(100), default="manual")

    started_at = db.Column(db.DateTime)
    completed_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.Index("ix_scrape_sessions_agency_started", "agency", "started_at"),
        db.CheckConstraint(
            "status IN ('pending', 'running', 'completed', 'failed', 'stopped')",
            name="scrape_sessions_status_check",
        ),
    )

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        # Column defaults only apply at flush; counters must be usable before that.
        for column in (
            "pages_processed", "records_total", "records_found", "records_created",
            "records_updated", "records_existing", "records_failed", "errors_count",
            "consecutive_existing", "existing_batches",
        ):
            if getattr(self, column) is None:
                setattr(self, column, 0)
        if self.status is None:
            self.status = PENDING
        if self.session_id is None:
            self.session_id = generate_session_id()
        if self.params is None:
            self.params = {}

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @property
    def is_running(self) -> bool:
        return self.status == RUNNING

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def transition_to(self, status: str, reason: str = None):
        """
        Move to a new status.

        Same-status moves are no-ops. Terminal states are never re-opened.

        Raises:
            InvalidSessionTransition: if the lifecycle forbids the move
        """
        if status == self.status:
            return
        if status not in ALLOWED_TRANSITIONS.get(self.status, ()):
            raise InvalidSessionTransition(self.status, status)

        self.status = status
        now = datetime.utcnow()
        if status == RUNNING:
            self.started_at = now
        if status in TERMINAL_STATUSES:
            self.completed_at = now
            if reason:
                self.stop_reason = reason

    def start(self):
        self.transition_to(RUNNING)

    def complete(self, reason: str = None):
        self.transition_to(COMPLETED, reason)

    def fail(self, error, reason: str = "error"):
        self.error_message = str(error)
        self.transition_to(FAILED, reason)

    def stop(self, reason: str = "stopped_by_user"):
        self.transition_to(STOPPED, reason)

    # =========================================================================
    # Deltas
    # =========================================================================

    def advance_to(self, page: int):
        """Move the page cursor forward. The cursor never goes back."""
        if self.current_page is not None and page < self.current_page:
            raise ValueError(
                f"Cursor cannot move backwards ({self.current_page} -> {page})"
            )
        self.current_page = page

    def expect_records(self, count: int):
        """Record how many raw records a fetch returned."""
        self.records_total += max(count, 0)

    def apply_outcome(self, outcome: Outcome):
        """Count one processed record."""
        outcome = Outcome(outcome)
        self.records_found += 1

        if outcome == Outcome.CREATED:
            self.records_created += 1
        elif outcome == Outcome.UPDATED:
            self.records_updated += 1
        elif outcome == Outcome.EXISTING:
            self.records_existing += 1
        else:
            self.records_failed += 1
            self.errors_count += 1

        if outcome == Outcome.EXISTING:
            self.consecutive_existing += 1
        else:
            self.consecutive_existing = 0

    def record_fetch_error(self, message: str):
        self.errors_count += 1
        self.error_message = message

    def record_batch(self, found: int, existing: int):
        """Count one processed batch/page."""
        self.pages_processed += 1
        if found > 0 and existing == found:
            self.existing_batches += 1
        else:
            self.existing_batches = 0

    # =========================================================================
    # Read helpers
    # =========================================================================

    @property
    def records_processed(self) -> int:
        return (
            self.records_created
            + self.records_updated
            + self.records_existing
            + self.records_failed
        )

    @property
    def duration_seconds(self) -> float:
        if not self.started_at:
            return 0
        end = self.completed_at or datetime.utcnow()
        return (end - self.started_at).total_seconds()

    @property
    def success_rate(self) -> float:
        """Share of found records that were created, in percent."""
        if self.records_found > 0:
            return round(self.records_created / self.records_found * 100, 2)
        return 0.0

    def summary(self) -> dict:
        return {
            "session_id": self.session_id,
            "status": self.status,
            "duration_seconds": self.duration_seconds,
            "pages_processed": self.pages_processed,
            "records_found": self.records_found,
            "records_created": self.records_created,
            "records_updated": self.records_updated,
            "records_existing": self.records_existing,
            "errors_count": self.errors_count,
            "success_rate": self.success_rate,
        }

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "agency": self.agency,
            "record_type": self.record_type,
            "status": self.status,
            "stop_reason": self.stop_reason,
            "error_message": self.error_message,
            "start_page": self.start_page,
            "max_pages": self.max_pages,
            "current_page": self.current_page,
            "date_from": self.date_from.isoformat() if self.date_from else None,
            "date_to": self.date_to.isoformat() if self.date_to else None,
            "pages_processed": self.pages_processed,
            "records_total": self.records_total,
            "records_found": self.records_found,
            "records_created": self.records_created,
            "records_updated": self.records_updated,
            "records_existing": self.records_existing,
            "records_failed": self.records_failed,
            "errors_count": self.errors_count,
            "params": self.params,
            "triggered_by": self.triggered_by,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
        }

    @classmethod
    def get_by_session_id(cls, session_id: str):
        return cls.query.filter_by(session_id=session_id).first()

    @classmethod
    def active(cls):
        """Sessions that are pending or running."""
        return cls.query.filter(
            cls.status.in_([PENDING, RUNNING])
        ).order_by(cls.created_at.desc()).all()

    def __repr__(self):
        return f"<ScrapeSession {self.session_id} {self.agency}/{self.record_type} {self.status}>"
