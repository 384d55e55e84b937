# backend/app/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.
"""

from fastapi import Depends
from sqlalchemy.orm import Session

from ...services.class_booking_service import ClassBookingService
from .database import get_db


def get_class_booking_service(db: Session = Depends(get_db)) -> ClassBookingService:
    """
    Get the class booking service bound to the request's session.

    Args:
        db: Database session

    Returns:
        ClassBookingService instance
    """
    return ClassBookingService(db)
