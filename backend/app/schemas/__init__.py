# backend/app/schemas/__init__.py
"""
Pydantic schemas for the Classbook API.
"""

from .class_booking import AvailabilityResponse, CancellationResponse, RegistrationResponse
from .main_responses import HealthResponse

__all__ = [
    "AvailabilityResponse",
    "CancellationResponse",
    "HealthResponse",
    "RegistrationResponse",
]
