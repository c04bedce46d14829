# homematch/config.py
"""Environment-driven settings.

Values are read once at import time (after ``load_dotenv``). Data-store and
provider credentials are optional here; code paths that need them raise
``ServiceUnavailableError`` when they are missing.
"""
import os
from typing import List, Optional
from dotenv import load_dotenv

load_dotenv()


def parse_flag(raw: Optional[str]) -> bool:
    return (raw or "").strip().lower() in ("1", "true", "yes", "on")


# Supabase / PostgREST
SUPABASE_URL = os.getenv("SUPABASE_URL", "").rstrip("/")
SUPABASE_SERVICE_ROLE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")
SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY", "")
SUPABASE_TIMEOUT = float(os.getenv("SUPABASE_TIMEOUT", "15"))

# direct Postgres URL, only used to bootstrap the schema
POSTGRES_URL = os.getenv("POSTGRES_URL", "")
DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "5"))
DB_MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "10"))

# RapidAPI / Zillow
RAPIDAPI_KEY = os.getenv("RAPIDAPI_KEY", "")
RAPIDAPI_HOST = os.getenv("RAPIDAPI_HOST", "zillow-com1.p.rapidapi.com")
ZILLOW_IMAGES_HOST = os.getenv("ZILLOW_IMAGES_HOST", "us-housing-market-data1.p.rapidapi.com")

INGEST_PAGE_SIZE = int(os.getenv("INGEST_PAGE_SIZE", "20"))
INGEST_MAX_PAGES = int(os.getenv("INGEST_MAX_PAGES", "2"))
INGEST_DELAY_MS = int(os.getenv("INGEST_DELAY_MS", "1250"))
INGEST_INTERVAL_HOURS = float(os.getenv("INGEST_INTERVAL_HOURS", "24"))
INGEST_FETCH_IMAGES = parse_flag(os.getenv("INGEST_FETCH_IMAGES", "0"))
ENABLE_SCHEDULER = parse_flag(os.getenv("ENABLE_SCHEDULER", "0"))

ADMIN_API_TOKEN = os.getenv("ADMIN_API_TOKEN", "")
TEST_MODE = parse_flag(os.getenv("HOMEMATCH_TEST_MODE", "0"))


def parse_locations(raw: str) -> List[str]:
    """Split ``"Austin, TX; Denver, CO"`` into ``["Austin, TX", "Denver, CO"]``."""
    return [loc.strip() for loc in (raw or "").split(";") if loc.strip()]


INGEST_LOCATIONS = parse_locations(os.getenv("INGEST_LOCATIONS", ""))
