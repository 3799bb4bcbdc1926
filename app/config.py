# app/config.py
"""Environment-driven settings for the search service.

Values are read once at import time from the process environment (and a local
`.env` file when present).
"""
import os
from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("POSTGRES_URL")
DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", 5))
DB_MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", 10))
DB_POOL_TIMEOUT = int(os.getenv("DB_POOL_TIMEOUT", 10))
DB_STATEMENT_TIMEOUT_MS = int(os.getenv("DB_STATEMENT_TIMEOUT_MS", 15000))

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
REDIS_KEY_PREFIX = os.getenv("REDIS_KEY_PREFIX", "carmarket:")
REDIS_SOCKET_TIMEOUT = float(os.getenv("REDIS_SOCKET_TIMEOUT", 0.5))

# seconds
SEARCH_CACHE_TTL = int(os.getenv("SEARCH_CACHE_TTL", 300))
FACET_CACHE_TTL = int(os.getenv("FACET_CACHE_TTL", 1800))
DETAIL_CACHE_TTL = int(os.getenv("DETAIL_CACHE_TTL", 1800))
# must outlive every entry TTL so tag sets never expire before their members
CACHE_TAG_TTL = int(os.getenv("CACHE_TAG_TTL", 86400))
# a tag set is swept for dead members each time its size reaches a multiple of this
CACHE_TAG_PRUNE_EVERY = int(os.getenv("CACHE_TAG_PRUNE_EVERY", 500))

SEARCH_DEFAULT_LIMIT = int(os.getenv("SEARCH_DEFAULT_LIMIT", 20))
SEARCH_MAX_LIMIT = int(os.getenv("SEARCH_MAX_LIMIT", 100))

BUSINESS_TIMEZONE = os.getenv("BUSINESS_TIMEZONE", "Asia/Manila")

SCHEDULER_ENABLED = os.getenv("SCHEDULER_ENABLED", "1") == "1"
EXPIRY_CHECK_MINUTES = int(os.getenv("EXPIRY_CHECK_MINUTES", 60))
