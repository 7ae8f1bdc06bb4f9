"""
HTTP fetch client for regulator websites.

fetch_url() never raises: every failure comes back as a classified
FetchError so the run loop can count it and carry on.
"""
import logging
from typing import Dict, Optional

import requests

from .results import FetchError, FetchResult

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": "EnforcementScraper/1.0 (public register research)",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9",
    "Accept-Language": "en-GB,en;q=0.9",
}


def fetch_url(
    url: str,
    timeout_ms: int = 30_000,
    params: Optional[Dict[str, str]] = None,
    session: Optional[requests.Session] = None,
) -> FetchResult:
    """
    GET a page and return its body.

    Args:
        url: Page URL
        timeout_ms: Request timeout in milliseconds
        params: Optional query string parameters
        session: Optional requests.Session (connection reuse, tests)

    Returns:
        FetchResult with body set, or a FetchError of kind
        http_error / network_timeout / other
    """
    http = session or requests
    try:
        response = http.get(
            url,
            params=params,
            timeout=timeout_ms / 1000,
            headers=DEFAULT_HEADERS,
        )
    except requests.Timeout:
        logger.warning(f"Timeout after {timeout_ms}ms fetching {url}")
        return FetchResult.failure(FetchError.network_timeout(timeout_ms, url))
    except requests.RequestException as e:
        logger.warning(f"Request failed for {url}: {e}")
        return FetchResult.failure(FetchError.other(e))

    if response.status_code != 200:
        logger.warning(f"HTTP {response.status_code} fetching {url}")
        return FetchResult.failure(FetchError.http_error(response.status_code, url))

    return FetchResult.success(body=response.text)
