"""
Tests for fetchers and the HTTP client

Network access is replaced with mocked requests sessions.
"""

import pytest
from unittest.mock import Mock, patch

import requests

from scraping.fetchers import parse_html_table, parse_key_value_table
from scraping.http_client import fetch_url
from scraping.strategies.ea import EAFetcher, EACaseStrategy, record_id_from_links
from scraping.strategies.hse import HSECaseFetcher, HSECaseStrategy, HSENoticeFetcher, HSENoticeStrategy


HSE_LIST_HTML = """
<html><body>
<table><tr><td>Search the convictions database</td></tr></table>
<table>
  <tr><th>Case Number</th><th>Defendant</th><th>Date</th><th>Result</th><th>Fine</th></tr>
  <tr><td><a href="case_details.asp?SF=CN&SV=4312">4312</a></td><td>Acme Ltd</td>
      <td>18/03/2024</td><td>Guilty</td><td>£10,000.00</td></tr>
  <tr><td>4313</td><td>Beta Ltd</td><td>19/03/2024</td><td>Guilty</td><td>£500.00</td></tr>
</table>
</body></html>
"""

DETAIL_HTML = """
<table>
  <tr><th>Result</th><td>Guilty</td></tr>
  <tr><th>Total Fine</th><td>£10,000.00</td></tr>
  <tr><th>Costs Awarded</th><td>£1,500.00</td></tr>
</table>
"""

EA_LIST_HTML = """
<table>
  <tr><th>Name</th><th>Address</th><th>Date</th><th>Action</th></tr>
  <tr><td><a href="/public-register/enforcement-action/registration/1234">Acme Water</a></td>
      <td>1 River Rd</td><td>05/01/2024</td><td>Court case</td></tr>
</table>
"""


def response(status=200, text=""):
    return Mock(status_code=status, text=text)


# =============================================================================
# HTML Parsing Tests
# =============================================================================

class TestHtmlParsing:
    """Tests for the BeautifulSoup helpers."""

    def test_column_map(self):
        records = parse_html_table(HSE_LIST_HTML, HSECaseFetcher.COLUMN_MAP)

        assert len(records) == 2
        assert records[0]["regulator_id"] == "4312"
        assert records[0]["offender_name"] == "Acme Ltd"
        assert records[0]["offence_fine"] == "£10,000.00"
        assert records[0]["links"] == ["case_details.asp?SF=CN&SV=4312"]
        assert "links" not in records[1]

    def test_slugged_headers_without_map(self):
        records = parse_html_table(HSE_LIST_HTML)
        assert records[1]["case_number"] == "4313"

    def test_no_table(self):
        assert parse_html_table("<p>No results</p>") == []

    def test_key_value_table(self):
        assert parse_key_value_table(DETAIL_HTML) == {
            "result": "Guilty",
            "total_fine": "£10,000.00",
            "costs_awarded": "£1,500.00",
        }

    def test_record_id_from_links(self):
        assert record_id_from_links({"links": ["/x", "/public-register/enforcement-action/registration/99"]}) == "99"
        assert record_id_from_links({}) is None


# =============================================================================
# HTTP Client Tests
# =============================================================================

class TestFetchUrl:
    """Failure classification in fetch_url()."""

    def test_success(self):
        with patch("scraping.http_client.requests.get", return_value=response(200, "<html/>")) as get:
            result = fetch_url("https://example.test/list", timeout_ms=5_000, params={"PN": "1"})

        assert result.ok
        assert result.body == "<html/>"
        assert get.call_args.kwargs["timeout"] == 5.0
        assert get.call_args.kwargs["params"] == {"PN": "1"}

    def test_http_error(self):
        with patch("scraping.http_client.requests.get", return_value=response(503)):
            result = fetch_url("https://example.test/list")

        assert result.error.kind == "http_error"
        assert result.error.status == 503

    def test_timeout(self):
        with patch("scraping.http_client.requests.get", side_effect=requests.Timeout()):
            result = fetch_url("https://example.test/list", timeout_ms=2_000)

        assert result.error.kind == "network_timeout"
        assert "2000ms" in str(result.error)

    def test_connection_error(self):
        with patch("scraping.http_client.requests.get", side_effect=requests.ConnectionError("refused")):
            result = fetch_url("https://example.test/list")

        assert result.error.kind == "other"
        assert "refused" in str(result.error)

    def test_uses_given_session(self):
        session = Mock()
        session.get.return_value = response(200, "ok")

        assert fetch_url("https://example.test", session=session).body == "ok"
        session.get.assert_called_once()


# =============================================================================
# Agency Fetcher Tests
# =============================================================================

class TestHSEFetchers:
    """HSE listing and detail requests."""

    def test_case_listing(self):
        session = Mock()
        session.get.return_value = response(200, HSE_LIST_HTML)
        fetcher = HSECaseFetcher(http_session=session)
        params = HSECaseStrategy.validate_params({"database": "appeals"}).params

        result = fetcher.fetch(params, 3)

        url = session.get.call_args[0][0]
        assert url == "https://resources.hse.gov.uk/appeals/case/case_list.asp"
        assert session.get.call_args.kwargs["params"]["PN"] == "3"
        assert [r["regulator_id"] for r in result.records] == ["4312", "4313"]
        assert result.records[1]["regulator_url"].endswith("SF=CN&SV=4313")

    def test_case_detail_is_paced(self):
        session = Mock()
        session.get.return_value = response(200, DETAIL_HTML)
        limiter = Mock()
        fetcher = HSECaseFetcher(http_session=session, rate_limiter=limiter)

        result = fetcher.fetch_detail("4312")

        limiter.wait.assert_called_once_with("hse", None)
        assert result.records == [{"result": "Guilty", "total_fine": "£10,000.00", "costs_awarded": "£1,500.00"}]
        assert session.get.call_args.kwargs["params"] == {"SF": "CN", "SV": "4312"}

    def test_notice_country_filter(self):
        session = Mock()
        session.get.return_value = response(200, "<p>none</p>")
        params = HSENoticeStrategy.validate_params({"country": "wales"}).params

        result = HSENoticeFetcher(http_session=session).fetch(params, 1)

        assert result.ok and result.records == []
        assert session.get.call_args.kwargs["params"]["SV"] == "Wales"

    def test_parse_error_is_other(self):
        session = Mock()
        session.get.return_value = response(200, "<html/>")
        fetcher = HSECaseFetcher(parse=Mock(side_effect=ValueError("layout changed")), http_session=session)

        result = fetcher.fetch(HSECaseStrategy.validate_params({}).params, 1)

        assert result.error.kind == "other"
        assert "layout changed" in str(result.error)


class TestEAFetcher:
    """One request per action type."""

    def test_action_types_concatenated(self):
        session = Mock()
        session.get.return_value = response(200, EA_LIST_HTML)
        limiter = Mock()
        params = EACaseStrategy.validate_params({
            "date_from": "2024-01-01", "date_to": "2024-01-31",
            "action_types": ["court_case", "caution"],
        }).params

        result = EAFetcher(http_session=session, rate_limiter=limiter).fetch(params, 1)

        assert session.get.call_count == 2
        assert limiter.wait.call_count == 1
        assert [r["action_type"] for r in result.records] == ["court_case", "caution"]
        assert result.records[0]["regulator_id"] == "1234"
        assert result.records[0]["offender_name"] == "Acme Water"
        query = session.get.call_args_list[0].kwargs["params"]
        assert query["after"] == "2024-01-01"
        assert query["actionType"].endswith("/court-case")

    def test_failure_stops_unit(self):
        session = Mock()
        session.get.side_effect = [response(200, EA_LIST_HTML), response(500)]
        params = EACaseStrategy.validate_params({"action_types": ["court_case", "caution"]}).params

        result = EAFetcher(http_session=session).fetch(params, 1)

        assert not result.ok
        assert result.error.status == 500
