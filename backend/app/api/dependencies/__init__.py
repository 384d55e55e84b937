# backend/app/api/dependencies/__init__.py
"""
Central export point for all dependencies.
"""

from .auth import get_current_client_id
from .database import get_db
from .services import get_class_booking_service

__all__ = [
    # Auth
    "get_current_client_id",
    # Database
    "get_db",
    # Services
    "get_class_booking_service",
]
