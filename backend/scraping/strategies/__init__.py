"""
Concrete scraping strategies, one per (agency, record type).
"""
from .ea import EACaseStrategy, EANoticeStrategy
from .hse import HSECaseStrategy, HSENoticeStrategy

__all__ = [
    "HSECaseStrategy",
    "HSENoticeStrategy",
    "EACaseStrategy",
    "EANoticeStrategy",
]
