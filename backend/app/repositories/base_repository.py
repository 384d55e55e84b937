# backend/app/repositories/base_repository.py
"""
Base Repository Pattern for the booking engine.

Repositories own every query against the database and translate driver
errors into RepositoryException. They never commit: the service that owns
the unit of work decides when a transaction ends, so a failed step inside
``book`` or ``cancel`` rolls back everything that came before it.
"""

import logging
from typing import Any, Generic, List, NoReturn, Optional, Type, TypeVar

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.util import identity_key

from app.database.session_utils import get_dialect_name, is_lock_contention, supports_row_locks

from ..core.exceptions import ConcurrencyConflictException, RepositoryException

T = TypeVar("T")

logger = logging.getLogger(__name__)


class BaseRepository(Generic[T]):
    """
    Common data access helpers shared by the concrete repositories.

    Attributes:
        db: SQLAlchemy session (owned by the service layer)
        model: SQLAlchemy model class
    """

    def __init__(self, db: Session, model: Type[T]):
        self.db = db
        self.model = model
        self.logger = logging.getLogger(f"{__name__}.{model.__name__}")

    @property
    def dialect_name(self) -> str:
        return get_dialect_name(self.db)

    @property
    def uses_row_locks(self) -> bool:
        return supports_row_locks(self.db)

    def get_by_id(self, id: str) -> Optional[T]:
        """Retrieve an entity by its primary key."""
        try:
            return self.db.get(self.model, id)
        except SQLAlchemyError as e:
            self._raise_db_error(e, f"Failed to retrieve {self.model.__name__} {id}", id)

    def create(self, **kwargs: Any) -> T:
        """
        Add a new entity and flush to obtain database defaults.

        Note: Does NOT commit. IntegrityError propagates unchanged so callers
        can map specific constraint violations to domain errors.
        """
        entity = self.model(**kwargs)
        self.db.add(entity)
        self.db.flush()
        return entity

    def count(self, **kwargs: Any) -> int:
        """Count entities matching exact-match criteria."""
        stmt = select(func.count()).select_from(self.model).filter_by(**kwargs)
        return int(self._execute_scalar(stmt) or 0)

    def find_by(self, **kwargs: Any) -> List[T]:
        try:
            return list(self.db.execute(select(self.model).filter_by(**kwargs)).scalars().all())
        except SQLAlchemyError as e:
            self._raise_db_error(e, f"Failed to find {self.model.__name__} records")

    def refresh(self, instance: T) -> None:
        self.db.refresh(instance)

    def flush(self) -> None:
        self.db.flush()

    def _execute_scalar(self, stmt: Any) -> Any:
        """Execute a scalar query with error handling."""
        try:
            return self.db.execute(stmt).scalar()
        except SQLAlchemyError as e:
            self._raise_db_error(e, "Scalar query failed")

    def _execute_rowcount(self, stmt: Any, resource_id: str = "") -> int:
        """Execute a DML statement and return how many rows it touched."""
        try:
            result = self.db.execute(stmt, execution_options={"synchronize_session": False})
        except SQLAlchemyError as e:
            self._raise_db_error(e, f"Update on {self.model.__name__} failed", resource_id)
        count = int(result.rowcount or 0)
        if count and resource_id:
            self._expire_cached(resource_id)
        return count

    def _expire_cached(self, pk: str) -> None:
        """Drop stale column values of an instance updated behind the ORM's back."""
        instance = self.db.identity_map.get(identity_key(self.model, pk))
        if instance is not None:
            self.db.expire(instance)

    def _raise_db_error(self, exc: SQLAlchemyError, message: str, resource_id: str = "") -> NoReturn:
        if is_lock_contention(exc):
            self.logger.info("Lock contention on %s %s: %s", self.model.__name__, resource_id, exc)
            raise ConcurrencyConflictException(
                getattr(self.model, "__tablename__", self.model.__name__), resource_id
            ) from exc
        self.logger.error("%s: %s", message, exc)
        raise RepositoryException(f"{message}: {exc}") from exc
