# backend/app/services/credit_ledger_service.py
"""
Credit ledger: decides how a seat is paid for and reverses that on refund.

Runs inside the caller's unit of work and never commits. Every balance change
is a single guarded UPDATE issued through the repositories, so a lost race
surfaces as ConcurrencyConflictException instead of a wrong balance.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.enums import CreditPassStatus, PaymentStatus
from ..core.exceptions import (
    ConcurrencyConflictException,
    InsufficientCreditsException,
    PaymentRequiredException,
    RefundTargetNotFoundException,
    RepositoryException,
)
from ..repositories.factory import RepositoryFactory
from .base import BaseService


@dataclass(frozen=True)
class PaymentResolution:
    payment_status: PaymentStatus
    credits_used: int = 0
    pass_id: Optional[str] = None
    charged_amount: int = 0


@dataclass(frozen=True)
class RefundResult:
    credits_refunded: int = 0
    unpaid_balance_reduced: int = 0
    pass_id: Optional[str] = None

    @property
    def refunded(self) -> bool:
        return bool(self.credits_refunded or self.unpaid_balance_reduced)


@dataclass(frozen=True)
class CreditSummary:
    usable_credits: int
    usable_passes: int
    unpaid_balance: int


class CreditLedgerService(BaseService):
    """Pass debits, refunds and unpaid balance bookkeeping."""

    def __init__(self, db: Session, allow_unpaid: Optional[bool] = None):
        super().__init__(db)
        self.pass_repository = RepositoryFactory.create_credit_pass_repository(db)
        self.client_repository = RepositoryFactory.create_client_repository(db)
        self.allow_unpaid = settings.booking_allow_unpaid if allow_unpaid is None else allow_unpaid

    @BaseService.measure_operation("resolve_payment")
    def resolve_payment(
        self,
        client_id: str,
        required_credits: int,
        unit_price: int,
        now: datetime,
        allow_unpaid: Optional[bool] = None,
    ) -> PaymentResolution:
        """
        Pay for one seat.

        Debits the usable pass that expires soonest. With no usable pass the
        seat is added to the client's unpaid balance, unless unpaid bookings
        are disabled. ``allow_unpaid`` overrides the configured policy for one
        call. An unpaid seat uses no credits; ``charged_amount`` is what it owes.
        """
        if required_credits <= 0:
            return PaymentResolution(payment_status=PaymentStatus.COMPED)

        candidates = self.pass_repository.get_usable_passes(
            client_id=client_id, required=required_credits, at=now, for_update=True
        )
        if candidates:
            chosen = candidates[0]
            self.debit(chosen.id, required_credits, now)
            self.logger.info(
                "Debited %s credit(s) from pass %s for client %s",
                required_credits,
                chosen.id,
                client_id,
            )
            return PaymentResolution(
                payment_status=PaymentStatus.PAID,
                credits_used=required_credits,
                pass_id=chosen.id,
            )

        unpaid_allowed = self.allow_unpaid if allow_unpaid is None else allow_unpaid
        if not unpaid_allowed:
            raise PaymentRequiredException(client_id, required_credits)

        amount = required_credits * unit_price
        self._adjust_unpaid(client_id, amount, now)
        self.logger.info(
            "No usable pass for client %s; added %s to unpaid balance", client_id, amount
        )
        return PaymentResolution(
            payment_status=PaymentStatus.UNPAID,
            charged_amount=amount,
        )

    def debit(self, pass_id: str, credits: int, now: datetime) -> None:
        """Take credits from one pass or fail without touching it."""
        if self.pass_repository.debit(pass_id, credits, now):
            return
        credit_pass = self.pass_repository.get_by_id(pass_id)
        if credit_pass is None:
            raise RepositoryException(f"Credit pass {pass_id} disappeared during debit")
        self.pass_repository.refresh(credit_pass)
        if credit_pass.status != CreditPassStatus.ACTIVE or credit_pass.credits_left < credits:
            raise InsufficientCreditsException(pass_id, credits, credit_pass.credits_left)
        raise ConcurrencyConflictException("credit_pass", pass_id)

    @BaseService.measure_operation("refund")
    def refund(
        self,
        client_id: str,
        payment_status: PaymentStatus,
        credits: int,
        amount: int,
        now: datetime,
        pass_hint: Optional[str] = None,
    ) -> RefundResult:
        """
        Reverse whatever ``resolve_payment`` did for a seat.

        ``paid`` returns the credits to the hinted pass, else to the pass
        debited most recently that still has room. ``unpaid`` takes
        ``amount`` back off the unpaid balance. Anything else is a no-op.
        """
        if payment_status == PaymentStatus.PAID and credits > 0:
            target_id = self._refund_to_pass(client_id, credits, now, pass_hint)
            return RefundResult(credits_refunded=credits, pass_id=target_id)

        if payment_status == PaymentStatus.UNPAID and amount > 0:
            self._adjust_unpaid(client_id, -amount, now)
            return RefundResult(unpaid_balance_reduced=amount)

        return RefundResult()

    def get_credit_summary(self, client_id: str, now: datetime) -> CreditSummary:
        usable_credits, usable_passes = self.pass_repository.sum_usable_credits(
            client_id=client_id, at=now
        )
        return CreditSummary(
            usable_credits=usable_credits,
            usable_passes=usable_passes,
            unpaid_balance=self.client_repository.get_unpaid_balance(client_id),
        )

    def _refund_to_pass(
        self, client_id: str, credits: int, now: datetime, pass_hint: Optional[str]
    ) -> str:
        if pass_hint and self.pass_repository.refund(pass_hint, credits, now):
            return pass_hint

        target = self.pass_repository.find_refund_target(client_id=client_id, credits=credits)
        if target is None:
            raise RefundTargetNotFoundException(client_id, credits)
        if not self.pass_repository.refund(target.id, credits, now):
            raise ConcurrencyConflictException("credit_pass", target.id)
        return target.id

    def _adjust_unpaid(self, client_id: str, delta: int, now: datetime) -> None:
        if not self.client_repository.adjust_unpaid_balance(client_id, delta, now):
            raise RepositoryException(f"Client {client_id} not found for balance update")
