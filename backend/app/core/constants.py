"""Application-wide constants for the Classbook booking engine."""

from __future__ import annotations

BRAND_NAME = "Classbook"

API_TITLE = f"{BRAND_NAME} Booking API"
API_VERSION = "1.0.0"
API_DESCRIPTION = (
    "Class booking, waitlist and credit ledger engine for studio and gym group classes."
)

# ULID path parameters
ULID_PATH_PATTERN = r"^[0-9A-HJKMNP-TV-Z]{26}$"

# Outbox delivery backoff (seconds) per attempt number
OUTBOX_BACKOFF_SECONDS = [30, 120, 600, 1800, 7200]

# Notification event types
EVENT_REGISTRATION_BOOKED = "class_registration.booked"
EVENT_REGISTRATION_WAITLISTED = "class_registration.waitlisted"
EVENT_REGISTRATION_CANCELLED = "class_registration.cancelled"
EVENT_REGISTRATION_PROMOTED = "class_registration.promoted"
