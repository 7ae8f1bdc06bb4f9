"""
Strategy Registry - static map of (agency, record_type) -> strategy class.

    get_strategy("hse", "case")            -> HSECaseStrategy
    get_strategy("ea", "notice")           -> EANoticeStrategy   (alias)
    get_strategy("unknown", "case")        -> StrategyNotFound(...)

Lookups never raise; a miss is a StrategyNotFound value the caller
must check (the coordinator turns it into StrategyNotFoundError).
"""
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Type, Union

from .base import BaseStrategy
from .strategies import EACaseStrategy, EANoticeStrategy, HSECaseStrategy, HSENoticeStrategy

STRATEGIES: Dict[Tuple[str, str], Type[BaseStrategy]] = {
    ("hse", "case"): HSECaseStrategy,
    ("hse", "notice"): HSENoticeStrategy,
    ("environment_agency", "case"): EACaseStrategy,
    ("environment_agency", "notice"): EANoticeStrategy,
}

AGENCY_ALIASES = {
    "ea": "environment_agency",
    "environment-agency": "environment_agency",
    "environmentagency": "environment_agency",
}

RECORD_TYPE_ALIASES = {
    "cases": "case",
    "notices": "notice",
}


@dataclass(frozen=True)
class StrategyNotFound:
    agency: Optional[str]
    record_type: Optional[str]

    @property
    def message(self) -> str:
        return f"No scraping strategy for {self.agency}/{self.record_type}"

    def __bool__(self):
        return False


def normalize_agency(agency) -> Optional[str]:
    if agency is None:
        return None
    key = str(agency).strip().lower()
    return AGENCY_ALIASES.get(key, key)


def normalize_record_type(record_type) -> Optional[str]:
    if record_type is None:
        return None
    key = str(record_type).strip().lower()
    return RECORD_TYPE_ALIASES.get(key, key)


def get_strategy(agency, record_type) -> Union[Type[BaseStrategy], StrategyNotFound]:
    """Strategy class for a pair, or a StrategyNotFound value."""
    key = (normalize_agency(agency), normalize_record_type(record_type))
    strategy = STRATEGIES.get(key)
    if strategy is None:
        return StrategyNotFound(agency=key[0], record_type=key[1])
    return strategy


def list_strategies() -> List[Tuple[str, str]]:
    return list(STRATEGIES.keys())


def count_strategies() -> int:
    return len(STRATEGIES)


def strategy_exists(agency, record_type) -> bool:
    return not isinstance(get_strategy(agency, record_type), StrategyNotFound)


def describe_strategies() -> List[Dict]:
    return [strategy.describe() for strategy in STRATEGIES.values()]
