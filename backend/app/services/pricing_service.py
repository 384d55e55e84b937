# backend/app/services/pricing_service.py
"""
Unit price lookup for seats booked without a credit pass.

The booking engine only needs one number per occurrence: the price of a
single credit in minor currency units. Where it comes from is pluggable.
"""

from typing import Optional, Protocol

from app.core.config import settings
from app.models.class_occurrence import ClassOccurrence


class PricingResolver(Protocol):
    def unit_price(self, occurrence: ClassOccurrence) -> int:
        ...


class TemplatePricingResolver:
    """Use the class template's ``base_price``, else the configured unit price."""

    def __init__(self, default_unit_price: Optional[int] = None):
        self.default_unit_price = (
            settings.booking_credit_unit_price if default_unit_price is None else default_unit_price
        )

    def unit_price(self, occurrence: ClassOccurrence) -> int:
        template = occurrence.template
        if template is not None and template.base_price is not None:
            return int(template.base_price)
        return int(self.default_unit_price)
