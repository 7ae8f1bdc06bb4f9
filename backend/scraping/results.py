"""
Result values passed between the coordinator, strategies and collaborators.

Everything on the per-record hot path returns one of these instead of
raising, so a single bad record or page never unwinds the run loop.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class Outcome(str, Enum):
    """What happened to a single scraped record."""
    CREATED = "created"
    UPDATED = "updated"
    EXISTING = "existing"
    ERROR = "error"


@dataclass(frozen=True)
class ParamsResult:
    """Result of Strategy.validate_params."""
    ok: bool
    params: Any = None
    error: Optional[str] = None

    @classmethod
    def success(cls, params) -> "ParamsResult":
        return cls(ok=True, params=params)

    @classmethod
    def failure(cls, reason: str) -> "ParamsResult":
        return cls(ok=False, error=reason)


@dataclass(frozen=True)
class FetchError:
    """
    Classified fetch failure.

    kind is one of:
    - http_error: non-200 response (status set)
    - network_timeout: no response within the configured timeout
    - other: connection refused, DNS, parse failure, etc.
    """
    kind: str
    message: str
    status: Optional[int] = None

    @classmethod
    def http_error(cls, status: int, url: str = "") -> "FetchError":
        return cls(kind="http_error", message=f"HTTP {status} for {url}".strip(), status=status)

    @classmethod
    def network_timeout(cls, timeout_ms: int, url: str = "") -> "FetchError":
        return cls(kind="network_timeout", message=f"Timed out after {timeout_ms}ms {url}".strip())

    @classmethod
    def other(cls, reason: Any) -> "FetchError":
        return cls(kind="other", message=str(reason))

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class FetchResult:
    """Result of a fetch: raw records, or a classified error."""
    ok: bool
    records: List[Dict[str, Any]] = field(default_factory=list)
    body: Optional[str] = None
    error: Optional[FetchError] = None

    @classmethod
    def success(cls, records: Optional[List[Dict[str, Any]]] = None, body: Optional[str] = None) -> "FetchResult":
        return cls(ok=True, records=list(records or []), body=body)

    @classmethod
    def failure(cls, error: FetchError) -> "FetchResult":
        return cls(ok=False, error=error)


@dataclass
class ProcessResult:
    """Outcome of processing one record (Strategy.process_one)."""
    outcome: Outcome
    regulator_id: Optional[str] = None
    record: Any = None
    reason: Optional[str] = None
    changed_fields: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.outcome != Outcome.ERROR

    @classmethod
    def error(cls, reason: Any, regulator_id: Optional[str] = None) -> "ProcessResult":
        return cls(outcome=Outcome.ERROR, regulator_id=regulator_id, reason=str(reason))

    def __repr__(self):
        return f"<ProcessResult {self.regulator_id} outcome={self.outcome.value}>"


DUPLICATE_KEY = "duplicate_key"


@dataclass
class StoreResult:
    """Result of a persistence collaborator call."""
    ok: bool
    record: Any = None
    error_kind: Optional[str] = None
    reason: Optional[str] = None

    @property
    def is_duplicate(self) -> bool:
        return not self.ok and self.error_kind == DUPLICATE_KEY

    @classmethod
    def success(cls, record: Any = None) -> "StoreResult":
        return cls(ok=True, record=record)

    @classmethod
    def duplicate(cls, reason: str = "duplicate key") -> "StoreResult":
        return cls(ok=False, error_kind=DUPLICATE_KEY, reason=reason)

    @classmethod
    def failure(cls, reason: Any) -> "StoreResult":
        return cls(ok=False, error_kind="other", reason=str(reason))
