"""
HSE strategies - page-based scraping of resources.hse.gov.uk.

Cases:   /{database}/case/case_list.asp?PN={page}   (database: convictions, appeals)
         detail page per case for result, fine, costs, hearing date
Notices: /notices/notices/notice_list.asp?PN={page} filtered by country
"""
import logging
from typing import Any, ClassVar, Dict, Tuple

from pydantic import Field, field_validator

from models.enforcement import EnforcementCase, EnforcementNotice

from ..base import (
    PAGE,
    BaseStrategy,
    PageRangeParams,
    clean_text,
    parse_money,
    parse_record_date,
)
from ..fetchers import HttpFetcher

logger = logging.getLogger(__name__)

HSE_BASE_URL = "https://resources.hse.gov.uk"

HSE_DATABASES = ("convictions", "appeals")
HSE_COUNTRIES = ("All", "England", "Scotland", "Wales")


# =============================================================================
# Params
# =============================================================================

class HSECaseParams(PageRangeParams):
    database: str = Field(default="convictions", validate_default=True)

    @field_validator('database', mode='before')
    @classmethod
    def check_database(cls, v):
        if v is None or v == "":
            return "convictions"
        if not isinstance(v, str):
            raise ValueError("database must be a valid string")
        v = v.strip().lower()
        if v not in HSE_DATABASES:
            raise ValueError(f"database must be one of: {', '.join(HSE_DATABASES)}")
        return v


class HSENoticeParams(PageRangeParams):
    country: str = Field(default="All", validate_default=True)

    @field_validator('country', mode='before')
    @classmethod
    def check_country(cls, v):
        if v is None or v == "":
            return "All"
        if not isinstance(v, str):
            raise ValueError("country must be a valid string")
        for country in HSE_COUNTRIES:
            if country.lower() == v.strip().lower():
                return country
        raise ValueError(f"country must be one of: {', '.join(HSE_COUNTRIES)}")


# =============================================================================
# Fetchers
# =============================================================================

class HSECaseFetcher(HttpFetcher):
    AGENCY = "hse"
    COLUMN_MAP = {
        "regulator_id": ["case number", "case no", "case ref"],
        "offender_name": ["defendant", "name"],
        "offence_action_date": ["date"],
        "offence_result": ["result"],
        "offence_fine": ["fine"],
    }

    database = "convictions"

    def build_request(self, params, unit):
        self.database = params.database
        url = f"{HSE_BASE_URL}/{params.database}/case/case_list.asp"
        query = {"PN": str(unit), "ST": "C", "EO": "LIKE", "SN": "F", "SF": "DN", "SV": "", "SO": "DODS"}
        return url, query

    def build_detail_request(self, regulator_id):
        url = f"{HSE_BASE_URL}/{self.database}/case/case_details.asp"
        return url, {"SF": "CN", "SV": regulator_id}

    def fetch(self, params, unit):
        result = super().fetch(params, unit)
        if result.ok:
            for record in result.records:
                if record.get("regulator_id") and not record.get("regulator_url"):
                    record["regulator_url"] = (
                        f"{HSE_BASE_URL}/{params.database}/case/case_details.asp"
                        f"?SF=CN&SV={record['regulator_id']}"
                    )
        return result


class HSENoticeFetcher(HttpFetcher):
    AGENCY = "hse"
    COLUMN_MAP = {
        "regulator_id": ["notice number", "notice no"],
        "offender_name": ["recipient", "name"],
        "notice_type": ["type"],
        "notice_date": ["issue date", "date"],
    }

    def build_request(self, params, unit):
        url = f"{HSE_BASE_URL}/notices/notices/notice_list.asp"
        query = {
            "PN": str(unit), "ST": "N", "CO": ",AND", "SN": "F", "EO": "=",
            "SF": "CTR", "SV": params.country, "SO": "DNIS",
        }
        return url, query

    def build_detail_request(self, regulator_id):
        url = f"{HSE_BASE_URL}/notices/notices/notice_details.asp"
        return url, {"SF": "CN", "SV": regulator_id}

    def fetch(self, params, unit):
        result = super().fetch(params, unit)
        if result.ok:
            for record in result.records:
                if record.get("regulator_id") and not record.get("regulator_url"):
                    record["regulator_url"] = (
                        f"{HSE_BASE_URL}/notices/notices/notice_details.asp"
                        f"?SF=CN&SV={record['regulator_id']}"
                    )
        return result


# =============================================================================
# Strategies
# =============================================================================

class HSECaseStrategy(BaseStrategy):
    """HSE court cases, one listing page per unit plus a detail page per case."""

    AGENCY = "hse"
    RECORD_TYPE = "case"
    DISPLAY_NAME = "HSE Case Scraping"
    PAGINATION = PAGE
    PARAMS_MODEL = HSECaseParams
    MODEL = EnforcementCase
    COMPARABLE_FIELDS = (
        "offender_name",
        "offence_action_date",
        "offence_hearing_date",
        "offence_result",
        "offence_fine",
        "offence_costs",
        "offence_breaches",
        "related_cases",
        "regulator_url",
    )
    DETAIL_FIELDS: ClassVar[Dict[str, Tuple[str, ...]]] = {
        "offence_result": ("result", "verdict"),
        "offence_fine": ("fine",),
        "offence_costs": ("costs",),
        "offence_hearing_date": ("hearing",),
    }

    def default_fetcher(self, rate_limiter=None):
        return HSECaseFetcher(
            timeout_ms=self.settings.network_timeout_ms,
            rate_limiter=rate_limiter,
            settings=self.settings,
        )

    def normalize(self, raw: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "regulator_id": clean_text(raw.get("regulator_id")),
            "offender_name": clean_text(raw.get("offender_name")),
            "offence_action_type": "court_case",
            "offence_action_date": parse_record_date(raw.get("offence_action_date")),
            "offence_hearing_date": parse_record_date(raw.get("offence_hearing_date")),
            "offence_result": clean_text(raw.get("offence_result")),
            "offence_fine": parse_money(raw.get("offence_fine")),
            "offence_costs": parse_money(raw.get("offence_costs")),
            "offence_breaches": clean_text(raw.get("offence_breaches")),
            "related_cases": clean_text(raw.get("related_cases")),
            "regulator_url": clean_text(raw.get("regulator_url")),
        }


class HSENoticeStrategy(BaseStrategy):
    """HSE enforcement notices, one listing page per unit."""

    AGENCY = "hse"
    RECORD_TYPE = "notice"
    DISPLAY_NAME = "HSE Notice Scraping"
    PAGINATION = PAGE
    PARAMS_MODEL = HSENoticeParams
    MODEL = EnforcementNotice
    COMPARABLE_FIELDS = (
        "offender_name",
        "notice_type",
        "notice_date",
        "operative_date",
        "compliance_date",
        "notice_body",
        "offence_breaches",
        "regulator_url",
    )
    DETAIL_FIELDS: ClassVar[Dict[str, Tuple[str, ...]]] = {
        "operative_date": ("operative",),
        "compliance_date": ("compliance",),
        "notice_body": ("description", "body"),
    }

    def default_fetcher(self, rate_limiter=None):
        return HSENoticeFetcher(
            timeout_ms=self.settings.network_timeout_ms,
            rate_limiter=rate_limiter,
            settings=self.settings,
        )

    def normalize(self, raw: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "regulator_id": clean_text(raw.get("regulator_id")),
            "offender_name": clean_text(raw.get("offender_name")),
            "notice_type": clean_text(raw.get("notice_type")),
            "notice_date": parse_record_date(raw.get("notice_date")),
            "operative_date": parse_record_date(raw.get("operative_date")),
            "compliance_date": parse_record_date(raw.get("compliance_date")),
            "notice_body": clean_text(raw.get("notice_body")),
            "offence_breaches": clean_text(raw.get("offence_breaches")),
            "regulator_url": clean_text(raw.get("regulator_url")),
        }
