"""
Database Module
===============

Database connection utilities.
"""

from db.session import get_engine
from db.url import build_db_url, db_url

__all__ = [
    "build_db_url",
    "db_url",
    "get_engine",
]
