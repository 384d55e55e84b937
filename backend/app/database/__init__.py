"""
Database engine, session factory, and metadata shared across the application.
"""

from __future__ import annotations

from datetime import datetime
import logging
from typing import Any, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeMeta, Session, declarative_base, sessionmaker

from app.core.config import settings

logger = logging.getLogger(__name__)


def build_engine_kwargs(db_url: str) -> dict[str, Any]:
    """Pool settings per dialect; SQLite connections are shared across worker threads."""
    if db_url.startswith("sqlite"):
        return {
            "connect_args": {"check_same_thread": False, "timeout": 15},
            "future": True,
        }
    return {
        "pool_size": settings.database_pool_size,
        "max_overflow": settings.database_max_overflow,
        "pool_timeout": 10,
        "pool_recycle": 1800,
        "pool_pre_ping": True,
        "future": True,
        "connect_args": {"connect_timeout": 5, "application_name": "classbook_backend"},
    }


def create_db_engine(db_url: str) -> Engine:
    db_engine = create_engine(db_url, **build_engine_kwargs(db_url))

    @event.listens_for(db_engine, "connect")
    def receive_connect(dbapi_connection: Any, connection_record: Any) -> None:
        connection_record.info["connect_time"] = datetime.now()
        logger.debug("Database connection established")

    return db_engine


engine: Engine = create_db_engine(settings.get_database_url())

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)

Base: DeclarativeMeta = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """Get database session with proper cleanup."""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


__all__ = [
    "Base",
    "SessionLocal",
    "create_db_engine",
    "engine",
    "get_db",
]
