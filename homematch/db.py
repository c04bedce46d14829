# homematch/db.py
"""Data-store access.

``get_client`` is the FastAPI dependency for the PostgREST client used at
runtime. The SQLAlchemy engine is only created on demand to bootstrap the
schema on a direct Postgres connection.
"""
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base

from . import config
from .errors import ServiceUnavailableError
from .postgrest import PostgrestClient
from .utils import logger

Base = declarative_base()

_engine: Optional[Engine] = None
_client: Optional[PostgrestClient] = None


def normalize_database_url(url: str) -> str:
    # SQLAlchemy 2.x doesn't accept 'postgres://'
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+psycopg2://", 1)
    return url


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        if not config.POSTGRES_URL:
            raise ServiceUnavailableError("POSTGRES_URL not set")
        _engine = create_engine(
            normalize_database_url(config.POSTGRES_URL),
            pool_size=config.DB_POOL_SIZE,
            max_overflow=config.DB_MAX_OVERFLOW,
            pool_pre_ping=True
        )
    return _engine


def init_schema(engine: Optional[Engine] = None) -> None:
    """Create any missing tables declared in ``homematch.models``."""
    from . import models  # noqa: F401 ensure models are registered on Base
    Base.metadata.create_all(bind=engine or get_engine())
    logger.info("Database schema ensured")


def create_client(service_role: bool = True) -> PostgrestClient:
    key = config.SUPABASE_SERVICE_ROLE_KEY if service_role else config.SUPABASE_ANON_KEY
    if not config.SUPABASE_URL or not key:
        raise ServiceUnavailableError("Supabase is not configured")
    return PostgrestClient(config.SUPABASE_URL, key, timeout=config.SUPABASE_TIMEOUT)


def get_client() -> PostgrestClient:
    global _client
    if _client is None:
        _client = create_client()
    return _client
