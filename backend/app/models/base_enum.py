# backend/app/models/base_enum.py
"""
Safe enum helpers for SQLAlchemy.

Status columns are stored as VARCHAR holding the enum VALUE ('booked', not
'BOOKED') with a CHECK constraint listing the allowed values, so raw SQL,
seed scripts and ORM queries all agree on the stored representation and a
stray string can never be written.

Usage:
    from app.models.base_enum import create_safe_enum

    class Registration(Base):
        status = Column(
            create_safe_enum(RegistrationStatus, "registration_status"),
            nullable=False,
        )
"""

from enum import Enum
from typing import List, Type

from sqlalchemy import Enum as SAEnum


def _get_enum_values(enum_class: Type[Enum]) -> List[str]:
    return [str(member.value) for member in enum_class]


def create_safe_enum(enum_class: Type[Enum], name: str, *, length: int = 20) -> SAEnum:
    """
    Create a non-native SQLAlchemy Enum that persists enum values.

    Args:
        enum_class: The Python ``(str, Enum)`` class to use
        name: Name of the generated CHECK constraint
        length: VARCHAR length of the column

    Returns:
        SQLAlchemy Enum column type loading/storing enum members by value
    """
    return SAEnum(
        enum_class,
        name=name,
        native_enum=False,
        create_constraint=True,
        length=length,
        validate_strings=True,
        values_callable=_get_enum_values,
    )
