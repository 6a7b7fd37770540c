"""
SQLAlchemy declarative base for Nitpickr models.
"""

from datetime import datetime, timezone

from sqlalchemy.orm import DeclarativeBase


def utc_now() -> datetime:
    """Return current UTC time (timezone-aware)."""
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """
    Base class for all Nitpickr SQLAlchemy models.

    PostgreSQL in production, SQLite (aiosqlite) in tests.
    """

    pass
