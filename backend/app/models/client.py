# backend/app/models/client.py
"""
Client model.

Clients are owned by the identity subsystem. The booking engine only reads
them and moves ``unpaid_balance`` when a seat is booked without a usable pass.
"""

from typing import TYPE_CHECKING, List

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship
import ulid

from app.database import Base

from .types import TimestampMixin

if TYPE_CHECKING:
    from .credit_pass import CreditPass
    from .registration import ClassRegistration


class Client(TimestampMixin, Base):
    """A studio client who books classes."""

    __tablename__ = "clients"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    # Minor currency units owed for seats booked without a pass
    unpaid_balance: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    passes: Mapped[List["CreditPass"]] = relationship("CreditPass", back_populates="client")
    registrations: Mapped[List["ClassRegistration"]] = relationship(
        "ClassRegistration", back_populates="client"
    )

    def __repr__(self) -> str:
        return f"<Client(id={self.id}, unpaid_balance={self.unpaid_balance})>"
