"""
Enforcement Scraping Package

Orchestration engine for regulator enforcement data:
- Strategy registry (agency x record type)
- Session lifecycle with per-record progress
- Create / update / skip decision per record
- Config-driven rate limiting

Only the dependency-free value modules are re-exported here; import the
coordinator and registry from their modules (models import this package).
"""

from .errors import (
    InvalidParams,
    InvalidSessionTransition,
    ScrapingDisabled,
    ScrapingError,
    SessionNotFound,
    StrategyNotFoundError,
)
from .results import FetchError, FetchResult, Outcome, ProcessResult, StoreResult

__all__ = [
    "ScrapingError",
    "InvalidParams",
    "StrategyNotFoundError",
    "ScrapingDisabled",
    "SessionNotFound",
    "InvalidSessionTransition",
    "Outcome",
    "FetchError",
    "FetchResult",
    "ProcessResult",
    "StoreResult",
]
