"""
Database Session
================

SQLAlchemy engine factory.
"""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from db.url import db_url

_engine: Engine | None = None


def get_engine(database_url: str | None = None) -> Engine:
    """Return a process-wide SQLAlchemy engine (singleton for default URL)."""
    if database_url is not None:
        return _create(database_url)

    global _engine
    if _engine is None:
        if db_url is None:
            raise RuntimeError("No database configured: set PILOT_DB_URL or DB_USER/DB_PASS/DB_DATABASE")
        _engine = _create(db_url)
    return _engine


def _create(database_url: str) -> Engine:
    if database_url.startswith("sqlite"):
        # Scheduler and request threads share one SQLite database.
        if ":memory:" in database_url or database_url.rstrip("/").endswith("sqlite:"):
            return create_engine(
                database_url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        return create_engine(database_url, connect_args={"check_same_thread": False})
    return create_engine(database_url, pool_pre_ping=True)
