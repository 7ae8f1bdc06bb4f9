"""
Base Strategy - Abstract template for agency/record-type scraping.

A strategy knows how to:
- validate run parameters (pydantic params model)
- split a run into units (pages, or one date window)
- fetch a unit through its Fetcher collaborator
- normalize a raw record and hand it to the shared upsert routine
- report progress for a session

It owns no I/O itself: network goes through self.fetcher, persistence
through self.store.

Subclasses set class attributes:
- AGENCY, RECORD_TYPE: registry identity
- PAGINATION: "page" or "date_range"
- PARAMS_MODEL: pydantic params class
- MODEL: SQLAlchemy model for the default store
- COMPARABLE_FIELDS: fields compared when a record already exists
"""
import logging
from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, ClassVar, Dict, Iterator, Optional, Tuple

from dateutil import parser as date_parser
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .dedup import upsert_record
from .results import FetchError, FetchResult, ParamsResult, ProcessResult
from .settings import FALLBACK

logger = logging.getLogger(__name__)

PAGE = "page"
DATE_RANGE = "date_range"

MAX_PAGES_LIMIT = 100
DEFAULT_LOOKBACK_DAYS = 30


# =============================================================================
# Params models
# =============================================================================

class BaseParamsModel(BaseModel):
    """
    Base model for strategy params.

    Frozen after validation: a run's params never change once the session
    exists. Unknown keys are ignored so a shared form can post extra fields.
    """
    model_config = ConfigDict(
        frozen=True,
        str_strip_whitespace=True,
        populate_by_name=True,
        extra='ignore',
    )

    def session_fields(self) -> Dict[str, Any]:
        """Cursor columns to copy onto the ScrapeSession."""
        return {}


def _positive_int(value, name: str, default: int) -> int:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise ValueError(f"{name} must be a positive integer")
    if isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError:
            raise ValueError(f"{name} must be a positive integer")
    if not isinstance(value, int) or value <= 0:
        raise ValueError(f"{name} must be a positive integer")
    return value


class PageRangeParams(BaseParamsModel):
    start_page: int = Field(default=1, validate_default=True)
    max_pages: int = Field(default=10, validate_default=True)

    @field_validator('start_page', mode='before')
    @classmethod
    def check_start_page(cls, v):
        return _positive_int(v, "start_page", 1)

    @field_validator('max_pages', mode='before')
    @classmethod
    def check_max_pages(cls, v):
        v = _positive_int(v, "max_pages", 10)
        if v > MAX_PAGES_LIMIT:
            raise ValueError(f"max_pages must not exceed {MAX_PAGES_LIMIT}")
        return v

    def session_fields(self) -> Dict[str, Any]:
        return {"start_page": self.start_page, "max_pages": self.max_pages}


def parse_iso_date(value, name: str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date_parser.isoparse(value.strip()).date()
        except (ValueError, OverflowError):
            raise ValueError(f"{name} must be a valid date in YYYY-MM-DD format")
    raise ValueError(f"{name} must be a valid date")


class DateRangeParams(BaseParamsModel):
    """Date window + action types. Subclasses set the action type whitelist."""

    VALID_ACTION_TYPES: ClassVar[Tuple[str, ...]] = ()
    DEFAULT_ACTION_TYPES: ClassVar[Tuple[str, ...]] = ()

    date_from: Optional[date] = Field(default=None, validate_default=True)
    date_to: Optional[date] = Field(default=None, validate_default=True)
    action_types: Tuple[str, ...] = Field(default=None, validate_default=True)

    @field_validator('date_from', mode='before')
    @classmethod
    def check_date_from(cls, v):
        if v is None or v == "":
            return date.today() - timedelta(days=DEFAULT_LOOKBACK_DAYS)
        return parse_iso_date(v, "date_from")

    @field_validator('date_to', mode='before')
    @classmethod
    def check_date_to(cls, v):
        if v is None or v == "":
            return date.today()
        return parse_iso_date(v, "date_to")

    @field_validator('action_types', mode='before')
    @classmethod
    def check_action_types(cls, v):
        if v is None or v == "" or v == []:
            return cls.DEFAULT_ACTION_TYPES
        if isinstance(v, str):
            v = [part for part in v.split(",")]
        if not isinstance(v, (list, tuple)):
            raise ValueError("action_types must be a list of valid action types")

        types = tuple(str(t).strip().lower() for t in v if str(t).strip())
        invalid = [t for t in types if t not in cls.VALID_ACTION_TYPES]
        if invalid:
            raise ValueError(
                f"Invalid action types: {', '.join(invalid)}. "
                f"Valid types: {', '.join(cls.VALID_ACTION_TYPES)}"
            )
        return types or cls.DEFAULT_ACTION_TYPES

    @model_validator(mode='after')
    def check_window(self):
        if self.date_to < self.date_from:
            raise ValueError("date_to must be on or after date_from")
        return self

    def session_fields(self) -> Dict[str, Any]:
        return {"date_from": self.date_from, "date_to": self.date_to}


def validation_message(error: ValidationError) -> str:
    """First validation error as a plain sentence."""
    first = error.errors()[0]
    ctx_error = (first.get("ctx") or {}).get("error")
    if ctx_error is not None:
        return str(ctx_error)
    loc = ".".join(str(part) for part in first.get("loc", ()))
    return f"{loc}: {first.get('msg')}" if loc else first.get("msg", str(error))


# =============================================================================
# Record value helpers
# =============================================================================

def parse_record_date(value) -> Optional[date]:
    """Parse a scraped date (UK day-first). Blank or unparseable -> None."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return date_parser.parse(text, dayfirst=True).date()
    except (ValueError, OverflowError):
        logger.debug(f"Unparseable date: {text!r}")
        return None


def parse_money(value) -> Optional[Decimal]:
    """Parse a money amount like '£12,500.00'. Blank or unparseable -> None."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    text = str(value).replace("£", "").replace(",", "").strip()
    if not text:
        return None
    try:
        return Decimal(text)
    except InvalidOperation:
        return None


def clean_text(value) -> Optional[str]:
    if value is None:
        return None
    text = " ".join(str(value).split())
    return text or None


# =============================================================================
# Strategy
# =============================================================================

class BaseStrategy(ABC):
    """
    Abstract base class for all scraping strategies.

    Subclasses must implement:
    - normalize(): raw record dict -> model attributes
    - default_fetcher(): Fetcher used when none is injected
    """

    AGENCY: ClassVar[str] = ""
    RECORD_TYPE: ClassVar[str] = ""
    DISPLAY_NAME: ClassVar[str] = ""
    PAGINATION: ClassVar[str] = PAGE
    PARAMS_MODEL: ClassVar[type] = PageRangeParams
    MODEL: ClassVar[Any] = None
    NATURAL_KEY: ClassVar[Tuple[str, ...]] = ("agency", "regulator_id")
    COMPARABLE_FIELDS: ClassVar[Tuple[str, ...]] = ()
    # {field: [detail label keywords]} - fetched per record when missing
    DETAIL_FIELDS: ClassVar[Dict[str, Tuple[str, ...]]] = {}

    def __init__(self, fetcher=None, store=None, settings=None, rate_limiter=None):
        """
        Args:
            fetcher: Fetcher collaborator (defaults to the agency HTTP fetcher)
            store: RecordStore (defaults to SQLAlchemyRecordStore over MODEL)
            settings: ScrapingSettings for this run
            rate_limiter: Rate limiter for requests made inside one unit
        """
        self.settings = settings or FALLBACK
        self.fetcher = fetcher or self.default_fetcher(rate_limiter)
        if store is None:
            from .store import SQLAlchemyRecordStore
            store = SQLAlchemyRecordStore(self.MODEL)
        self.store = store

    # -------------------------------------------------------------------------
    # Identity
    # -------------------------------------------------------------------------

    @classmethod
    def display_name(cls) -> str:
        return cls.DISPLAY_NAME or f"{cls.AGENCY} {cls.RECORD_TYPE}"

    @classmethod
    def describe(cls) -> Dict[str, Any]:
        return {
            "agency": cls.AGENCY,
            "record_type": cls.RECORD_TYPE,
            "display_name": cls.display_name(),
            "pagination": cls.PAGINATION,
            "comparable_fields": list(cls.COMPARABLE_FIELDS),
        }

    # -------------------------------------------------------------------------
    # Params
    # -------------------------------------------------------------------------

    @classmethod
    def validate_params(cls, raw: Optional[Dict[str, Any]]) -> ParamsResult:
        """Validate and normalize run params. Never raises."""
        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            return ParamsResult.failure("params must be a mapping")
        try:
            return ParamsResult.success(cls.PARAMS_MODEL.model_validate(raw))
        except ValidationError as e:
            return ParamsResult.failure(validation_message(e))

    # -------------------------------------------------------------------------
    # Units + fetch
    # -------------------------------------------------------------------------

    def iter_units(self, params) -> Iterator[Any]:
        """One page number per page, or a single unit for date windows."""
        if self.PAGINATION == PAGE:
            yield from range(params.start_page, params.start_page + params.max_pages)
        else:
            yield 1

    @abstractmethod
    def default_fetcher(self, rate_limiter=None):
        ...

    def fetch(self, params, unit) -> FetchResult:
        """Fetch one unit. Collaborator exceptions become FetchError(kind='other')."""
        try:
            result = self.fetcher.fetch(params, unit)
        except Exception as e:
            logger.warning(f"{self.display_name()} fetch raised for unit {unit}: {e}")
            return FetchResult.failure(FetchError.other(e))
        if result is None:
            return FetchResult.failure(FetchError.other("fetcher returned no result"))
        return result

    # -------------------------------------------------------------------------
    # Records
    # -------------------------------------------------------------------------

    @abstractmethod
    def normalize(self, raw: Dict[str, Any]) -> Dict[str, Any]:
        """Map a raw record to model attributes (must include regulator_id)."""

    def enrich(self, raw: Dict[str, Any]) -> Dict[str, Any]:
        """
        Fill DETAIL_FIELDS from the detail page when the listing lacks them.

        A failed detail fetch degrades to the listing record.
        """
        if not self.DETAIL_FIELDS or not raw.get("regulator_id"):
            return raw
        if all(raw.get(name) not in (None, "") for name in self.DETAIL_FIELDS):
            return raw

        try:
            result = self.fetcher.fetch_detail(raw["regulator_id"])
        except Exception as e:
            result = FetchResult.failure(FetchError.other(e))

        if not result.ok or not result.records:
            reason = result.error or "empty detail page"
            logger.debug(f"Detail fetch skipped for {raw['regulator_id']}: {reason}")
            return raw

        enriched = dict(raw)
        details = result.records[0]
        for field_name, keywords in self.DETAIL_FIELDS.items():
            if enriched.get(field_name) not in (None, ""):
                continue
            if field_name in details:
                enriched[field_name] = details[field_name]
                continue
            for label, value in details.items():
                if any(keyword in label for keyword in keywords):
                    enriched[field_name] = value
                    break
        return enriched

    def process_one(self, raw: Dict[str, Any], session=None) -> ProcessResult:
        """Normalize one raw record and run the create/update/skip decision."""
        regulator_id = raw.get("regulator_id") if isinstance(raw, dict) else None
        try:
            attrs = self.normalize(self.enrich(raw))
        except Exception as e:
            return ProcessResult.error(f"invalid record: {e}", regulator_id=regulator_id)

        regulator_id = attrs.get("regulator_id")
        if not regulator_id:
            return ProcessResult.error("record has no regulator_id")

        attrs["agency"] = self.AGENCY
        return upsert_record(self.store, attrs, self.NATURAL_KEY, self.COMPARABLE_FIELDS)

    def summarize(self, raw: Dict[str, Any]) -> Dict[str, Any]:
        """Compact summary of a raw record for the processing log."""
        return {
            "regulator_id": raw.get("regulator_id"),
            "name": raw.get("offender_name"),
            "date": raw.get("offence_action_date") or raw.get("notice_date"),
            "amount": raw.get("offence_fine"),
        }

    # -------------------------------------------------------------------------
    # Progress
    # -------------------------------------------------------------------------

    @classmethod
    def progress_percentage(cls, session) -> float:
        """Progress in [0, 100]."""
        if cls.PAGINATION == PAGE:
            if not session.max_pages:
                return 0.0
            pct = (session.pages_processed or 0) / session.max_pages * 100.0
        else:
            if session.records_total:
                pct = (session.records_found or 0) / session.records_total * 100.0
            elif session.is_terminal:
                pct = 100.0
            else:
                pct = 0.0
        return round(max(0.0, min(pct, 100.0)), 1)

    @classmethod
    def format_progress(cls, session) -> Dict[str, Any]:
        progress = {
            "strategy": cls.display_name(),
            "percentage": cls.progress_percentage(session),
            "status": session.status,
            "records_found": session.records_found,
            "records_created": session.records_created,
            "records_updated": session.records_updated,
            "records_existing": session.records_existing,
            "errors_count": session.errors_count,
        }
        if cls.PAGINATION == PAGE:
            progress["current_page"] = session.current_page or 0
            progress["total_pages"] = session.max_pages
        else:
            progress["date_from"] = session.date_from.isoformat() if session.date_from else None
            progress["date_to"] = session.date_to.isoformat() if session.date_to else None
            progress["records_total"] = session.records_total
        return progress
