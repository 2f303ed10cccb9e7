# partpal/config.py
"""Environment-driven settings.

Values are read once at import time; a `.env` file in the working directory
is honoured.
"""
import os
from dotenv import load_dotenv

load_dotenv()


def _bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


DATABASE_URL = os.getenv("POSTGRES_URL")
DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", 5))
DB_MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", 10))
DB_STATEMENT_TIMEOUT_MS = int(os.getenv("DB_STATEMENT_TIMEOUT_MS", 5000))

# search
STORE_TIMEOUT_SECONDS = float(os.getenv("STORE_TIMEOUT_SECONDS", 5))
SEARCH_DEFAULT_PAGE_SIZE = int(os.getenv("SEARCH_DEFAULT_PAGE_SIZE", 20))
SEARCH_MAX_PAGE_SIZE = int(os.getenv("SEARCH_MAX_PAGE_SIZE", 100))
SEARCH_REQUIRE_FILTER = _bool("SEARCH_REQUIRE_FILTER", True)
# "filtered" or "base"
FACET_SCOPE = os.getenv("FACET_SCOPE", "filtered").lower()
FEATURED_MIN_RATING = float(os.getenv("FEATURED_MIN_RATING", 4.0))

# analytics
ANALYTICS_DEFAULT_LIMIT = int(os.getenv("ANALYTICS_DEFAULT_LIMIT", 10))
ANALYTICS_MAX_LIMIT = int(os.getenv("ANALYTICS_MAX_LIMIT", 50))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
