"""
Processing Log Model - Append-only audit row per scraped batch/page.

One row is written for every batch the coordinator processes, including
batches whose fetch failed and batches in which every record failed.
Rows are never updated after insert.
"""
from datetime import datetime

from sqlalchemy import event

from models.database import db


class ProcessingLog(db.Model):
    """Per-batch audit record of what was scraped and with what outcome."""

    __tablename__ = "processing_logs"

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.String(32), nullable=False, index=True)
    agency = db.Column(db.String(50), nullable=False)
    record_type = db.Column(db.String(20), nullable=False)

    batch_or_page = db.Column(db.Integer, nullable=False, default=1)  # page for HSE, batch for EA
    items_found = db.Column(db.Integer, nullable=False, default=0)
    items_created = db.Column(db.Integer, nullable=False, default=0)
    items_updated = db.Column(db.Integer, nullable=False, default=0)
    items_existing = db.Column(db.Integer, nullable=False, default=0)
    items_failed = db.Column(db.Integer, nullable=False, default=0)

    # [{"regulator_id", "name", "date", "amount", "outcome"}, ...]
    scraped_items = db.Column(db.JSON, nullable=False, default=list)
    creation_errors = db.Column(db.JSON, nullable=False, default=list)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        db.Index("ix_processing_logs_session_batch", "session_id", "batch_or_page"),
        db.CheckConstraint(
            "items_found >= 0 AND items_created >= 0 AND items_updated >= 0 "
            "AND items_existing >= 0 AND items_failed >= 0",
            name="processing_logs_counts_check",
        ),
    )

    @classmethod
    def for_session(cls, session_id: str):
        """All rows for a session in batch order."""
        return cls.query.filter_by(session_id=session_id).order_by(cls.id.asc()).all()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "agency": self.agency,
            "record_type": self.record_type,
            "batch_or_page": self.batch_or_page,
            "items_found": self.items_found,
            "items_created": self.items_created,
            "items_updated": self.items_updated,
            "items_existing": self.items_existing,
            "items_failed": self.items_failed,
            "scraped_items": self.scraped_items,
            "creation_errors": self.creation_errors,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<ProcessingLog {self.session_id} batch={self.batch_or_page} found={self.items_found}>"


@event.listens_for(ProcessingLog, "before_update")
def _reject_update(mapper, connection, target):
    raise RuntimeError("processing_logs rows are append-only")
