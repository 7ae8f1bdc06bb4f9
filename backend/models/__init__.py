"""
Models package - SQLAlchemy models
"""
from models.database import db
from models.scrape_session import ScrapeSession
from models.processing_log import ProcessingLog
from models.scraping_config import ScrapingConfig
from models.enforcement import EnforcementCase, EnforcementNotice

__all__ = [
    'db',
    'ScrapeSession',
    'ProcessingLog',
    'ScrapingConfig',
    'EnforcementCase',
    'EnforcementNotice',
]
