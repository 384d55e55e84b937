# backend/app/models/registration.py
"""
Class registration model.

A registration is a client's claim on one occurrence. It holds a seat while
``booked`` or ``attended``, queues while ``waitlist`` and is released once
``cancelled``. The partial unique index below guarantees a client has at most
one active (booked or waitlist) registration per occurrence, even when two
requests race past the application-level duplicate check.
"""

from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column, relationship
import ulid

from app.core.enums import PaymentStatus, RegistrationStatus
from app.database import Base

from .base_enum import create_safe_enum
from .types import TimestampMixin, UTCDateTime, utcnow

if TYPE_CHECKING:
    from .class_occurrence import ClassOccurrence
    from .client import Client
    from .credit_pass import CreditPass

_ACTIVE_PREDICATE = text("status IN ('booked', 'waitlist')")


class ClassRegistration(TimestampMixin, Base):
    """A client's booking or waitlist entry for one class occurrence."""

    __tablename__ = "class_registrations"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    occurrence_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("class_occurrences.id"), nullable=False, index=True
    )
    client_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("clients.id"), nullable=False, index=True
    )
    status: Mapped[RegistrationStatus] = mapped_column(
        create_safe_enum(RegistrationStatus, "ck_class_registrations_status"),
        nullable=False,
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        create_safe_enum(PaymentStatus, "ck_class_registrations_payment_status"),
        nullable=False,
        default=PaymentStatus.PENDING,
    )
    credits_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    # Amount added to the client's unpaid balance for this seat, reversed on refund
    charged_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    # Pass debited for this seat; only a hint, refunds fall back to the ledger lookup
    credit_pass_id: Mapped[Optional[str]] = mapped_column(
        String(26), ForeignKey("credit_passes.id"), nullable=True
    )
    booked_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)
    promoted_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)

    occurrence: Mapped["ClassOccurrence"] = relationship(
        "ClassOccurrence", back_populates="registrations"
    )
    client: Mapped["Client"] = relationship("Client", back_populates="registrations")
    credit_pass: Mapped[Optional["CreditPass"]] = relationship("CreditPass")

    __table_args__ = (
        Index(
            "uq_class_registrations_active",
            "occurrence_id",
            "client_id",
            unique=True,
            postgresql_where=_ACTIVE_PREDICATE,
            sqlite_where=_ACTIVE_PREDICATE,
        ),
        Index("ix_class_registrations_waitlist_order", "occurrence_id", "status", "booked_at"),
    )

    @property
    def is_active(self) -> bool:
        return self.status.is_active

    @property
    def holds_seat(self) -> bool:
        return self.status.holds_seat

    def __repr__(self) -> str:
        return (
            f"<ClassRegistration(id={self.id}, occurrence_id={self.occurrence_id}, "
            f"client_id={self.client_id}, status={self.status}, payment={self.payment_status})>"
        )
