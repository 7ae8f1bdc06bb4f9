"""
Environment Agency strategies - date-window scraping of the public register.

The register has no pagination: one search per action type returns the
complete result set for the window, so a run is a single unit. Fines,
costs and results live on the per-record detail page.
"""
import logging
import re
from typing import Any, ClassVar, Dict, Tuple

from models.enforcement import EnforcementCase, EnforcementNotice

from ..base import (
    DATE_RANGE,
    BaseStrategy,
    DateRangeParams,
    clean_text,
    parse_money,
    parse_record_date,
)
from ..fetchers import HttpFetcher
from ..results import FetchResult

logger = logging.getLogger(__name__)

EA_HOST = "https://environment.data.gov.uk"
EA_REGISTER_URL = f"{EA_HOST}/public-register/enforcement-action/registration"
EA_ACTION_TYPE_BASE = "http://environment.data.gov.uk/public-register/enforcement-action/def/action-type"

EA_ACTION_TYPES = {
    "court_case": f"{EA_ACTION_TYPE_BASE}/court-case",
    "caution": f"{EA_ACTION_TYPE_BASE}/caution",
    "enforcement_notice": f"{EA_ACTION_TYPE_BASE}/enforcement-notice",
}

_RECORD_ID = re.compile(r"/registration/(\d+)")


def record_id_from_links(raw: Dict[str, Any]):
    for link in raw.get("links") or ():
        match = _RECORD_ID.search(link)
        if match:
            return match.group(1)
    return None


# =============================================================================
# Params
# =============================================================================

class EACaseParams(DateRangeParams):
    VALID_ACTION_TYPES: ClassVar[Tuple[str, ...]] = ("court_case", "caution")
    DEFAULT_ACTION_TYPES: ClassVar[Tuple[str, ...]] = ("court_case",)


class EANoticeParams(DateRangeParams):
    VALID_ACTION_TYPES: ClassVar[Tuple[str, ...]] = ("enforcement_notice",)
    DEFAULT_ACTION_TYPES: ClassVar[Tuple[str, ...]] = ("enforcement_notice",)


# =============================================================================
# Fetcher
# =============================================================================

class EAFetcher(HttpFetcher):
    """One search request per action type; results are concatenated."""

    AGENCY = "environment_agency"
    COLUMN_MAP = {
        "offender_name": ["name"],
        "summary_address": ["address"],
        "action_date": ["date"],
        "action_type_label": ["action"],
    }

    def build_request(self, params, unit, action_type=None):
        action_type = action_type or params.action_types[0]
        query = {
            "name-search": "",
            "actionType": EA_ACTION_TYPES[action_type],
            "offenceType": "",
            "agencyFunction": "",
            "after": params.date_from.isoformat(),
            "before": params.date_to.isoformat(),
        }
        return EA_REGISTER_URL, query

    def build_detail_request(self, regulator_id):
        return f"{EA_REGISTER_URL}/{regulator_id}", {"__pageState": "result-enforcement-action"}

    def fetch(self, params, unit):
        records = []
        for i, action_type in enumerate(params.action_types):
            if i > 0:
                self.pace()
            url, query = self.build_request(params, unit, action_type)
            logger.debug(f"Fetching EA {action_type} {params.date_from} -> {params.date_to}")
            result = self.get(url, query, self.parse)
            if not result.ok:
                return result

            for record in result.records:
                record["action_type"] = action_type
                record.setdefault("regulator_id", record_id_from_links(record))
                if record.get("regulator_id"):
                    record.setdefault("regulator_url", f"{EA_REGISTER_URL}/{record['regulator_id']}")
                records.append(record)

        logger.info(f"EA search returned {len(records)} records for {len(params.action_types)} action types")
        return FetchResult.success(records)


# =============================================================================
# Strategies
# =============================================================================

class EACaseStrategy(BaseStrategy):
    """Environment Agency court cases and cautions for a date window."""

    AGENCY = "environment_agency"
    RECORD_TYPE = "case"
    DISPLAY_NAME = "Environment Agency Case Scraping"
    PAGINATION = DATE_RANGE
    PARAMS_MODEL = EACaseParams
    MODEL = EnforcementCase
    COMPARABLE_FIELDS = (
        "offence_result",
        "offence_fine",
        "offence_costs",
        "offence_hearing_date",
        "regulator_url",
        "related_cases",
    )
    DETAIL_FIELDS: ClassVar[Dict[str, Tuple[str, ...]]] = {
        "offence_result": ("result", "outcome"),
        "offence_fine": ("fine",),
        "offence_costs": ("costs",),
        "offence_hearing_date": ("hearing",),
        "offence_breaches": ("offence",),
    }

    def default_fetcher(self, rate_limiter=None):
        return EAFetcher(
            timeout_ms=self.settings.network_timeout_ms,
            rate_limiter=rate_limiter,
            settings=self.settings,
        )

    def normalize(self, raw: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "regulator_id": clean_text(raw.get("regulator_id")),
            "offender_name": clean_text(raw.get("offender_name")),
            "offence_action_type": raw.get("action_type") or "court_case",
            "offence_action_date": parse_record_date(
                raw.get("offence_action_date") or raw.get("action_date")
            ),
            "offence_hearing_date": parse_record_date(raw.get("offence_hearing_date")),
            "offence_result": clean_text(raw.get("offence_result")),
            "offence_fine": parse_money(raw.get("offence_fine")),
            "offence_costs": parse_money(raw.get("offence_costs")),
            "offence_breaches": clean_text(raw.get("offence_breaches")),
            "related_cases": clean_text(raw.get("related_cases")),
            "regulator_url": clean_text(raw.get("regulator_url")),
        }

    def summarize(self, raw: Dict[str, Any]) -> Dict[str, Any]:
        summary = super().summarize(raw)
        summary["date"] = summary["date"] or raw.get("action_date")
        summary["action_type"] = raw.get("action_type")
        return summary


class EANoticeStrategy(BaseStrategy):
    """Environment Agency enforcement notices for a date window."""

    AGENCY = "environment_agency"
    RECORD_TYPE = "notice"
    DISPLAY_NAME = "Environment Agency Notice Scraping"
    PAGINATION = DATE_RANGE
    PARAMS_MODEL = EANoticeParams
    MODEL = EnforcementNotice
    COMPARABLE_FIELDS = (
        "notice_type",
        "notice_date",
        "compliance_date",
        "notice_body",
        "offence_breaches",
        "regulator_url",
    )
    DETAIL_FIELDS: ClassVar[Dict[str, Tuple[str, ...]]] = {
        "notice_body": ("description", "detail"),
        "offence_breaches": ("offence",),
    }

    def default_fetcher(self, rate_limiter=None):
        return EAFetcher(
            timeout_ms=self.settings.network_timeout_ms,
            rate_limiter=rate_limiter,
            settings=self.settings,
        )

    def normalize(self, raw: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "regulator_id": clean_text(raw.get("regulator_id")),
            "offender_name": clean_text(raw.get("offender_name")),
            "notice_type": clean_text(raw.get("notice_type")) or "enforcement_notice",
            "notice_date": parse_record_date(raw.get("notice_date") or raw.get("action_date")),
            "operative_date": parse_record_date(raw.get("operative_date")),
            "compliance_date": parse_record_date(raw.get("compliance_date")),
            "notice_body": clean_text(raw.get("notice_body")),
            "offence_breaches": clean_text(raw.get("offence_breaches")),
            "regulator_url": clean_text(raw.get("regulator_url")),
        }

    def summarize(self, raw: Dict[str, Any]) -> Dict[str, Any]:
        summary = super().summarize(raw)
        summary["date"] = summary["date"] or raw.get("action_date")
        return summary
