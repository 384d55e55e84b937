# backend/app/models/credit_pass.py
"""
Credit pass model.

A pass is a prepaid bundle of class credits with an optional expiry. The
``credits_left`` column is only ever changed through guarded UPDATE
statements in CreditPassRepository; the CHECK constraints are the last line
against a negative or overfilled balance.
"""

from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship
import ulid

from app.core.enums import CreditPassStatus
from app.database import Base

from .base_enum import create_safe_enum
from .types import TimestampMixin, UTCDateTime, utcnow

if TYPE_CHECKING:
    from .client import Client


class CreditPass(TimestampMixin, Base):
    """Prepaid class credits owned by a client."""

    __tablename__ = "credit_passes"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    client_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("clients.id"), nullable=False, index=True
    )
    pass_type: Mapped[str] = mapped_column(String(50), nullable=False, default="standard")
    total_credits: Mapped[int] = mapped_column(Integer, nullable=False)
    credits_left: Mapped[int] = mapped_column(Integer, nullable=False)
    valid_from: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    status: Mapped[CreditPassStatus] = mapped_column(
        create_safe_enum(CreditPassStatus, "ck_credit_passes_status"),
        nullable=False,
        default=CreditPassStatus.ACTIVE,
    )
    purchased_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)

    client: Mapped["Client"] = relationship("Client", back_populates="passes")

    __table_args__ = (
        CheckConstraint("total_credits >= 0", name="ck_credit_passes_total"),
        CheckConstraint(
            "credits_left >= 0 AND credits_left <= total_credits",
            name="ck_credit_passes_credits_left",
        ),
        Index("ix_credit_passes_client_status", "client_id", "status"),
    )

    def is_usable_at(self, moment: datetime, required: int = 1) -> bool:
        """True when the pass can cover ``required`` credits at ``moment``."""
        if self.status != CreditPassStatus.ACTIVE:
            return False
        if self.credits_left < required:
            return False
        if self.valid_from is not None and self.valid_from > moment:
            return False
        if self.expires_at is not None and self.expires_at <= moment:
            return False
        return True

    def __repr__(self) -> str:
        return (
            f"<CreditPass(id={self.id}, client_id={self.client_id}, "
            f"credits_left={self.credits_left}/{self.total_credits}, status={self.status})>"
        )
