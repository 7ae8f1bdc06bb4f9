"""
Fetcher collaborators - the only place strategies touch the network.

A Fetcher turns (params, unit) into raw record dicts:
- fetch(): one listing page / date window
- fetch_detail(): second round trip for agencies whose listing is thin

HttpFetcher is a concrete base: subclasses build the request, the body is
handed to a parse callable. The default parser reads the first HTML table
whose headers match the subclass COLUMN_MAP (BeautifulSoup). Anything more
agency-specific is injected as `parse`.
"""
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Tuple

from bs4 import BeautifulSoup

from .http_client import fetch_url
from .results import FetchError, FetchResult

logger = logging.getLogger(__name__)

Parser = Callable[[str], List[Dict[str, Any]]]


class Fetcher(ABC):
    """Source of raw records for one strategy."""

    @abstractmethod
    def fetch(self, params, unit) -> FetchResult:
        """Fetch one unit of work (page number or date window)."""

    def fetch_detail(self, regulator_id: str) -> FetchResult:
        """Fetch the detail record for one listing entry."""
        return FetchResult.failure(FetchError.other("detail fetch not supported"))


# =============================================================================
# HTML helpers
# =============================================================================

def _slug(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "_", text.strip().lower()).strip("_")


def map_table_columns(headers: List[str], column_map: Dict[str, List[str]]) -> Dict[str, int]:
    """
    Map record fields to column indices by keyword matching.

    Args:
        headers: Lower-cased header texts
        column_map: {field: [keywords]} - first header containing any
                    keyword wins

    Returns:
        {field: column_index}
    """
    mapping = {}
    for field_name, keywords in column_map.items():
        for i, header in enumerate(headers):
            if any(keyword in header for keyword in keywords):
                mapping[field_name] = i
                break
    return mapping


def parse_html_table(body: str, column_map: Optional[Dict[str, List[str]]] = None) -> List[Dict[str, Any]]:
    """
    Parse listing rows from the first matching HTML table.

    Without a column_map, rows are keyed by the slugged header text.
    Links in a row are kept under `links` (absolute or relative hrefs).
    """
    soup = BeautifulSoup(body, "html.parser")

    for table in soup.find_all("table"):
        rows = table.find_all("tr")
        if len(rows) < 2:
            continue

        headers = [
            cell.get_text(strip=True).lower()
            for cell in rows[0].find_all(["th", "td"])
        ]
        if not headers:
            continue

        if column_map:
            col_map = map_table_columns(headers, column_map)
            if not col_map:
                continue
        else:
            col_map = {_slug(h): i for i, h in enumerate(headers) if h}

        records = []
        for row in rows[1:]:
            cells = row.find_all(["th", "td"])
            if not cells:
                continue

            record = {}
            for field_name, index in col_map.items():
                if index < len(cells):
                    record[field_name] = cells[index].get_text(strip=True)

            links = [a["href"] for a in row.find_all("a", href=True)]
            if links:
                record["links"] = links

            if any(v for k, v in record.items() if k != "links"):
                records.append(record)

        return records

    return []


def parse_key_value_table(body: str) -> Dict[str, str]:
    """Parse a two-column label/value detail table into a dict."""
    soup = BeautifulSoup(body, "html.parser")
    details = {}
    for row in soup.find_all("tr"):
        cells = row.find_all(["th", "td"])
        if len(cells) < 2:
            continue
        label = _slug(cells[0].get_text(strip=True))
        if label:
            details[label] = cells[1].get_text(" ", strip=True)
    return details


# =============================================================================
# HTTP fetcher
# =============================================================================

class HttpFetcher(Fetcher):
    """
    Fetcher backed by http_client.fetch_url.

    Subclasses set:
    - AGENCY: rate limiter key for detail requests
    - COLUMN_MAP: default listing parser column keywords
    and implement build_request(); build_detail_request() is optional.

    The coordinator rate-limits each unit. Extra requests made inside one
    unit (detail pages, additional listing queries) are paced here.
    """

    AGENCY: str = "default"
    COLUMN_MAP: Dict[str, List[str]] = {}

    def __init__(
        self,
        parse: Optional[Parser] = None,
        parse_detail: Optional[Callable[[str], Dict[str, Any]]] = None,
        timeout_ms: int = 30_000,
        rate_limiter=None,
        settings=None,
        http_session=None,
    ):
        self.parse = parse or (lambda body: parse_html_table(body, self.COLUMN_MAP))
        self.parse_detail = parse_detail or parse_key_value_table
        self.timeout_ms = timeout_ms
        self.rate_limiter = rate_limiter
        self.settings = settings
        self.http_session = http_session

    @abstractmethod
    def build_request(self, params, unit) -> Tuple[str, Dict[str, str]]:
        """Return (url, query_params) for one unit."""

    def build_detail_request(self, regulator_id: str) -> Optional[Tuple[str, Dict[str, str]]]:
        """Return (url, query_params) for a detail page, or None if unsupported."""
        return None

    def pace(self):
        if self.rate_limiter:
            self.rate_limiter.wait(self.AGENCY, self.settings)

    def get(self, url: str, query: Dict[str, str], parser: Callable[[str], Any]) -> FetchResult:
        """GET + parse. Parser exceptions become FetchError(kind='other')."""
        result = fetch_url(url, self.timeout_ms, query, self.http_session)
        if not result.ok:
            return result

        try:
            parsed = parser(result.body)
        except Exception as e:
            logger.warning(f"Failed to parse response from {url}: {e}")
            return FetchResult.failure(FetchError.other(f"parse error for {url}: {e}"))

        if isinstance(parsed, dict):
            parsed = [parsed]
        return FetchResult.success(parsed, body=result.body)

    def fetch(self, params, unit) -> FetchResult:
        url, query = self.build_request(params, unit)
        logger.debug(f"Fetching {self.AGENCY} unit {unit}: {url}")
        return self.get(url, query, self.parse)

    def fetch_detail(self, regulator_id: str) -> FetchResult:
        request = self.build_detail_request(regulator_id)
        if request is None:
            return super().fetch_detail(regulator_id)

        url, query = request
        self.pace()
        return self.get(url, query, self.parse_detail)
