"""
Scraping error taxonomy.

Raised synchronously (before any session exists):
- InvalidParams: strategy rejected the run parameters
- StrategyNotFoundError: no strategy registered for (agency, record_type)
- ScrapingDisabled: configuration switched the scrape type off

Fetch failures, record failures and persistence failures are NOT raised
through the run loop; they come back as values (see results.py) and are
counted on the session.
"""


class ScrapingError(Exception):
    """Base class for scraping errors."""


class InvalidParams(ScrapingError):
    """Strategy parameter validation failed."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class StrategyNotFoundError(ScrapingError):
    """No strategy registered for an agency/record type pair."""

    def __init__(self, agency: str, record_type: str):
        super().__init__(f"No scraping strategy for {agency}/{record_type}")
        self.agency = agency
        self.record_type = record_type


class ScrapingDisabled(ScrapingError):
    """Scraping of the requested type is disabled in configuration."""


class SessionNotFound(ScrapingError):
    """No scrape session with the given id."""

    def __init__(self, session_id: str):
        super().__init__(f"Scrape session not found: {session_id}")
        self.session_id = session_id


class InvalidSessionTransition(ScrapingError):
    """Attempted a status change the session lifecycle does not allow."""

    def __init__(self, current: str, requested: str):
        super().__init__(f"Cannot move session from {current} to {requested}")
        self.current = current
        self.requested = requested
