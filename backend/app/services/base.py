# backend/app/services/base.py
"""
Base Service Pattern for the booking engine.

Provides common functionality for all service classes including:
- Transaction management
- Logging
- Performance monitoring
"""

from contextlib import contextmanager
from functools import wraps
import logging
import time
from typing import Any, Callable, Dict, Iterator, TypeVar, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import ConcurrencyConflictException, ServiceException
from ..database.session_utils import is_lock_contention
from ..monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


class BaseService:
    """
    Base class for all service layer components.

    Provides common patterns for:
    - Database session management
    - Logging
    - Transaction handling
    - Performance monitoring
    """

    # Class-level metrics storage
    _class_metrics: Dict[str, Dict[str, Dict[str, float]]] = {}

    def __init__(self, db: Session):
        self.db = db
        self.logger = logging.getLogger(self.__class__.__name__)

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """
        Context manager for database transactions.

        Commits on success and rolls back on any error. Driver errors become
        ServiceException, except lock contention which becomes
        ConcurrencyConflictException so the caller can retry.

        Usage:
            with self.transaction():
                self.db.add(entity)
        """
        try:
            yield self.db
            self.db.commit()
            self.logger.debug("Transaction committed successfully")
        except SQLAlchemyError as e:
            self.db.rollback()
            if is_lock_contention(e):
                self.logger.info("Transaction lost a lock race: %s", e)
                raise ConcurrencyConflictException("transaction", "") from e
            self.logger.error("Transaction failed: %s", e)
            raise ServiceException(f"Database operation failed: {e}") from e
        except Exception:
            self.db.rollback()
            raise

    @staticmethod
    def measure_operation(operation_name: str) -> Callable[[F], F]:
        """
        Decorator to measure operation performance.

        Usage:
            @BaseService.measure_operation("book")
            def book(self, occurrence_id, client_id):
                ...
        """

        def decorator(func: F) -> F:
            @wraps(func)
            def wrapper(self, *args, **kwargs):
                start_time = time.time()
                success = False
                error_type = None

                try:
                    result = func(self, *args, **kwargs)
                    success = True
                    return result
                except Exception as e:
                    error_type = type(e).__name__
                    raise
                finally:
                    elapsed = time.time() - start_time
                    if hasattr(self, "_record_metric"):
                        self._record_metric(operation_name, elapsed, success)

                    if elapsed > 1.0 and hasattr(self, "logger"):
                        self.logger.warning(
                            "Slow operation detected: %s took %.2fs", operation_name, elapsed
                        )

                    prometheus_metrics.record_service_operation(
                        service=self.__class__.__name__,
                        operation=operation_name,
                        duration=elapsed,
                        status="success" if success else "error",
                        error_type=error_type,
                    )

            wrapper._operation_name = operation_name  # type: ignore[attr-defined]
            return cast(F, wrapper)

        return decorator

    def log_operation(self, operation: str, **context: Any) -> None:
        """Log an operation with structured context."""
        self.logger.info("Operation: %s", operation, extra={"operation": operation, **context})

    def _record_metric(self, operation: str, elapsed: float, success: bool) -> None:
        class_name = self.__class__.__name__
        metrics = BaseService._class_metrics.setdefault(class_name, {})
        data = metrics.setdefault(
            operation,
            {"count": 0, "total_time": 0.0, "success_count": 0, "failure_count": 0},
        )
        data["count"] += 1
        data["total_time"] += elapsed
        if success:
            data["success_count"] += 1
        else:
            data["failure_count"] += 1

    def get_metrics(self) -> Dict[str, Any]:
        """Per-operation counters and average duration for this service."""
        result: Dict[str, Any] = {}
        for operation, data in BaseService._class_metrics.get(self.__class__.__name__, {}).items():
            count = data["count"]
            if not count:
                continue
            result[operation] = {
                "count": count,
                "avg_time": data["total_time"] / count,
                "success_rate": data["success_count"] / count,
                "failure_count": data["failure_count"],
            }
        return result
