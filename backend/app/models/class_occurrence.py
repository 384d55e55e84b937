# backend/app/models/class_occurrence.py
"""
Class template and occurrence models.

A ClassTemplate describes a kind of class (title, credit cost, price). A
ClassOccurrence is one scheduled instance of it with a fixed capacity.

Architecture: the number of confirmed seats is never stored on the
occurrence. It is derived from the registration set inside the transaction
that depends on it. The ``version`` column is a lock token, not a count:
every transaction that changes the registration set bumps it with a guarded
UPDATE, so two writers that read the same snapshot cannot both commit.
"""

from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship
import ulid

from app.core.enums import OccurrenceStatus
from app.database import Base

from .base_enum import create_safe_enum
from .types import TimestampMixin, UTCDateTime

if TYPE_CHECKING:
    from .registration import ClassRegistration


class ClassTemplate(TimestampMixin, Base):
    """Reusable class definition; credit cost and price apply to every occurrence."""

    __tablename__ = "class_templates"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    credits_required: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    # Price of one credit for this class; falls back to the configured unit price
    base_price: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    occurrences: Mapped[List["ClassOccurrence"]] = relationship(
        "ClassOccurrence", back_populates="template"
    )

    __table_args__ = (
        CheckConstraint("credits_required >= 0", name="ck_class_templates_credits_required"),
        CheckConstraint("base_price IS NULL OR base_price >= 0", name="ck_class_templates_base_price"),
    )


class ClassOccurrence(TimestampMixin, Base):
    """One scheduled instance of a class."""

    __tablename__ = "class_occurrences"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    template_id: Mapped[Optional[str]] = mapped_column(
        String(26), ForeignKey("class_templates.id"), nullable=True
    )
    title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    starts_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, index=True)
    ends_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[OccurrenceStatus] = mapped_column(
        create_safe_enum(OccurrenceStatus, "ck_class_occurrences_status"),
        nullable=False,
        default=OccurrenceStatus.SCHEDULED,
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    template: Mapped[Optional[ClassTemplate]] = relationship(
        "ClassTemplate", back_populates="occurrences", lazy="joined"
    )
    registrations: Mapped[List["ClassRegistration"]] = relationship(
        "ClassRegistration", back_populates="occurrence"
    )

    __table_args__ = (
        CheckConstraint("capacity >= 1", name="ck_class_occurrences_capacity"),
        CheckConstraint("ends_at >= starts_at", name="ck_class_occurrences_time_order"),
        Index("ix_class_occurrences_status_starts_at", "status", "starts_at"),
    )

    @property
    def credits_required(self) -> int:
        if self.template is None:
            return 1
        return int(self.template.credits_required)

    @property
    def display_title(self) -> str:
        if self.title:
            return self.title
        if self.template is not None:
            return self.template.title
        return "Class"

    def has_started(self, now: datetime) -> bool:
        return self.starts_at <= now

    def __repr__(self) -> str:
        return (
            f"<ClassOccurrence(id={self.id}, starts_at={self.starts_at}, "
            f"capacity={self.capacity}, status={self.status})>"
        )
