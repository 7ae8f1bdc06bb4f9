"""
Record Store - persistence collaborator for enforcement records.

Three calls, each returning a StoreResult instead of raising:
- create(attrs): insert; a unique-key violation comes back as duplicate_key
- find_by_natural_key(key): lookup, record is None when absent
- update(record, changes): write only the given attributes
"""
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .results import StoreResult

logger = logging.getLogger(__name__)


class RecordStore(ABC):
    @abstractmethod
    def create(self, attrs: Dict[str, Any]) -> StoreResult:
        ...

    @abstractmethod
    def find_by_natural_key(self, key: Dict[str, Any]) -> StoreResult:
        ...

    @abstractmethod
    def update(self, record: Any, changes: Dict[str, Any]) -> StoreResult:
        ...


class SQLAlchemyRecordStore(RecordStore):
    """Store backed by a SQLAlchemy model with a unique natural key."""

    def __init__(self, model, db_session=None):
        """
        Args:
            model: Model class (EnforcementCase, EnforcementNotice)
            db_session: SQLAlchemy session (defaults to db.session)
        """
        if db_session is None:
            from models.database import db
            db_session = db.session
        self.model = model
        self.db_session = db_session

    def create(self, attrs: Dict[str, Any]) -> StoreResult:
        record = self.model(**attrs)
        if hasattr(record, "last_synced_at"):
            record.last_synced_at = datetime.utcnow()
        try:
            self.db_session.add(record)
            self.db_session.commit()
            return StoreResult.success(record)
        except IntegrityError as e:
            self.db_session.rollback()
            return StoreResult.duplicate(str(e.orig) if e.orig else str(e))
        except SQLAlchemyError as e:
            self.db_session.rollback()
            logger.error(f"Failed to create {self.model.__name__}: {e}")
            return StoreResult.failure(e)

    def find_by_natural_key(self, key: Dict[str, Any]) -> StoreResult:
        try:
            record = self.db_session.query(self.model).filter_by(**key).first()
            return StoreResult.success(record)
        except SQLAlchemyError as e:
            self.db_session.rollback()
            return StoreResult.failure(e)

    def update(self, record: Any, changes: Dict[str, Any]) -> StoreResult:
        try:
            for name, value in changes.items():
                setattr(record, name, value)
            if hasattr(record, "last_synced_at"):
                record.last_synced_at = datetime.utcnow()
            self.db_session.commit()
            return StoreResult.success(record)
        except SQLAlchemyError as e:
            self.db_session.rollback()
            logger.error(f"Failed to update {self.model.__name__}: {e}")
            return StoreResult.failure(e)
