import os
from urllib.parse import urlsplit

from dotenv import load_dotenv

load_dotenv()

DEFAULT_DATABASE_URL = 'sqlite:///enforcement.db'
LOCAL_HOSTS = ('localhost', '127.0.0.1', None)


def _get_database_url():
    """
    Get DATABASE_URL, normalised for SQLAlchemy.

    - postgres:// (Heroku/Render style) becomes postgresql://
    - Remote PostgreSQL gets sslmode=require unless the URL sets it
    - Unset falls back to a local SQLite file (development only)
    """
    database_url = os.getenv('DATABASE_URL') or DEFAULT_DATABASE_URL

    if database_url.startswith('postgres://'):
        database_url = 'postgresql://' + database_url[len('postgres://'):]

    if not database_url.startswith('postgresql'):
        return database_url

    parts = urlsplit(database_url)
    if parts.hostname not in LOCAL_HOSTS and 'sslmode=' not in parts.query:
        query = f"{parts.query}&sslmode=require" if parts.query else "sslmode=require"
        database_url = parts._replace(query=query).geturl()

    return database_url


def _engine_options(database_url):
    if database_url.startswith('sqlite'):
        return {}
    return {
        'pool_pre_ping': True,      # Verify connection is alive before using
        'pool_recycle': 300,        # Recycle connections every 5 minutes
        'pool_size': 5,
        'max_overflow': 10,
    }


class Config:
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key')
    DEBUG = os.getenv('FLASK_DEBUG', 'False').lower() == 'true'
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()

    SQLALCHEMY_DATABASE_URI = _get_database_url()
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = _engine_options(SQLALCHEMY_DATABASE_URI)

    # Redis: shared rate-limit window + progress pub/sub (optional)
    REDIS_URL = os.getenv('REDIS_URL')

    # Per-agency rate limit overrides (YAML)
    SCRAPER_RATE_LIMITS_PATH = os.getenv('SCRAPER_RATE_LIMITS_PATH')
