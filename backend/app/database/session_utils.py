"""
Dialect helpers for code that must branch between PostgreSQL and SQLite.
"""

from __future__ import annotations

from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm import Session


def get_dialect_name(session: Session, default: str = "sqlite") -> str:
    """Return the bound dialect name, or ``default`` for unbound sessions."""
    try:
        bind = session.get_bind()
    except Exception:
        return default
    dialect = getattr(bind, "dialect", None)
    return getattr(dialect, "name", None) or default


def supports_row_locks(session: Session) -> bool:
    """
    True when SELECT ... FOR UPDATE actually locks rows.

    SQLite serialises writers at the database level, so callers that rely on
    row locks there must also carry an optimistic guard.
    """
    return get_dialect_name(session) == "postgresql"


_RETRYABLE_PGCODES = frozenset({"40001", "40P01", "55P03"})


def is_lock_contention(exc: BaseException) -> bool:
    """
    True for driver errors that mean "another writer got there first".

    Covers SQLite's ``database is locked`` and PostgreSQL serialization
    failures, deadlocks and lock timeouts.
    """
    if not isinstance(exc, DBAPIError):
        return False
    orig = getattr(exc, "orig", None)
    if getattr(orig, "pgcode", None) in _RETRYABLE_PGCODES:
        return True
    return isinstance(exc, OperationalError) and "database is locked" in str(orig or exc).lower()
