"""
Tests for CreditLedgerService.

Covers pass selection order, guarded debits, refunds and the unpaid-balance
fallback.
"""

from datetime import timedelta

import pytest

from app.core.enums import CreditPassStatus, PaymentStatus
from app.core.exceptions import (
    InsufficientCreditsException,
    PaymentRequiredException,
    RefundTargetNotFoundException,
)
from app.services.credit_ledger_service import CreditLedgerService
from tests.factories.class_booking import create_client, create_credit_pass


class TestResolvePayment:
    def test_debits_pass_expiring_soonest(self, db, test_client_record, now):
        later = create_credit_pass(
            db, test_client_record, credits=5, expires_at=now + timedelta(days=30)
        )
        sooner = create_credit_pass(
            db, test_client_record, credits=5, expires_at=now + timedelta(days=5)
        )
        ledger = CreditLedgerService(db)

        payment = ledger.resolve_payment(test_client_record.id, 1, 1000, now)

        assert payment.payment_status == PaymentStatus.PAID
        assert payment.pass_id == sooner.id
        assert payment.credits_used == 1
        db.refresh(sooner)
        db.refresh(later)
        assert sooner.credits_left == 4
        assert later.credits_left == 5

    def test_open_ended_pass_used_last(self, db, test_client_record, now):
        open_ended = create_credit_pass(db, test_client_record, credits=5, expires_at=None)
        dated = create_credit_pass(
            db, test_client_record, credits=5, expires_at=now + timedelta(days=90)
        )

        payment = CreditLedgerService(db).resolve_payment(test_client_record.id, 1, 1000, now)

        assert payment.pass_id == dated.id
        db.refresh(open_ended)
        assert open_ended.credits_left == 5

    def test_ties_broken_by_oldest_purchase(self, db, test_client_record, now):
        expiry = now + timedelta(days=10)
        newer = create_credit_pass(
            db, test_client_record, expires_at=expiry, purchased_at=now - timedelta(days=1)
        )
        older = create_credit_pass(
            db, test_client_record, expires_at=expiry, purchased_at=now - timedelta(days=20)
        )

        payment = CreditLedgerService(db).resolve_payment(test_client_record.id, 1, 1000, now)

        assert payment.pass_id == older.id
        assert payment.pass_id != newer.id

    def test_expired_and_future_passes_are_ignored(self, db, test_client_record, now):
        create_credit_pass(db, test_client_record, expires_at=now - timedelta(seconds=1))
        create_credit_pass(db, test_client_record, valid_from=now + timedelta(days=1))
        create_credit_pass(
            db, test_client_record, credits=5, credits_left=0, status=CreditPassStatus.DEPLETED
        )

        payment = CreditLedgerService(db).resolve_payment(test_client_record.id, 1, 1500, now)

        assert payment.payment_status == PaymentStatus.UNPAID
        assert payment.pass_id is None
        assert payment.charged_amount == 1500
        db.refresh(test_client_record)
        assert test_client_record.unpaid_balance == 1500

    def test_unpaid_amount_scales_with_required_credits(self, db, test_client_record, now):
        payment = CreditLedgerService(db).resolve_payment(test_client_record.id, 2, 1000, now)

        assert payment.charged_amount == 2000
        assert payment.credits_used == 0
        db.refresh(test_client_record)
        assert test_client_record.unpaid_balance == 2000

    def test_pass_with_too_few_credits_is_skipped(self, db, test_client_record, now):
        single = create_credit_pass(db, test_client_record, credits=5, credits_left=1)

        payment = CreditLedgerService(db).resolve_payment(test_client_record.id, 2, 1000, now)

        assert payment.payment_status == PaymentStatus.UNPAID
        db.refresh(single)
        assert single.credits_left == 1

    def test_unpaid_disabled_requires_payment(self, db, test_client_record, now):
        ledger = CreditLedgerService(db, allow_unpaid=False)

        with pytest.raises(PaymentRequiredException) as exc_info:
            ledger.resolve_payment(test_client_record.id, 1, 1000, now)

        assert exc_info.value.code == "PAYMENT_REQUIRED"
        db.refresh(test_client_record)
        assert test_client_record.unpaid_balance == 0

    def test_per_call_override_allows_unpaid(self, db, test_client_record, now):
        ledger = CreditLedgerService(db, allow_unpaid=False)

        payment = ledger.resolve_payment(test_client_record.id, 1, 1000, now, allow_unpaid=True)

        assert payment.payment_status == PaymentStatus.UNPAID
        assert payment.credits_used == 0
        assert payment.charged_amount == 1000

    def test_free_class_is_comped(self, db, ten_class_pass, test_client_record, now):
        payment = CreditLedgerService(db).resolve_payment(test_client_record.id, 0, 1000, now)

        assert payment.payment_status == PaymentStatus.COMPED
        assert payment.credits_used == 0
        db.refresh(ten_class_pass)
        assert ten_class_pass.credits_left == 10


class TestDebit:
    def test_last_credit_depletes_pass(self, db, test_client_record, now):
        credit_pass = create_credit_pass(db, test_client_record, credits=3, credits_left=1)

        CreditLedgerService(db).debit(credit_pass.id, 1, now)

        db.refresh(credit_pass)
        assert credit_pass.credits_left == 0
        assert credit_pass.status == CreditPassStatus.DEPLETED

    def test_debit_never_goes_negative(self, db, test_client_record, now):
        credit_pass = create_credit_pass(db, test_client_record, credits=3, credits_left=0)

        with pytest.raises(InsufficientCreditsException):
            CreditLedgerService(db).debit(credit_pass.id, 1, now)

        db.refresh(credit_pass)
        assert credit_pass.credits_left == 0


class TestRefund:
    def test_paid_refund_restores_hinted_pass(self, db, test_client_record, now):
        credit_pass = create_credit_pass(db, test_client_record, credits=3, credits_left=1)
        ledger = CreditLedgerService(db)
        ledger.debit(credit_pass.id, 1, now)

        result = ledger.refund(
            client_id=test_client_record.id,
            payment_status=PaymentStatus.PAID,
            credits=1,
            amount=0,
            now=now,
            pass_hint=credit_pass.id,
        )

        assert result.refunded
        assert result.credits_refunded == 1
        assert result.pass_id == credit_pass.id
        db.refresh(credit_pass)
        assert credit_pass.credits_left == 1
        assert credit_pass.status == CreditPassStatus.ACTIVE

    def test_paid_refund_without_hint_uses_most_recent_debit(self, db, test_client_record, now):
        untouched = create_credit_pass(
            db, test_client_record, credits=5, expires_at=now + timedelta(days=50)
        )
        debited = create_credit_pass(
            db, test_client_record, credits=5, expires_at=now + timedelta(days=5)
        )
        ledger = CreditLedgerService(db)
        payment = ledger.resolve_payment(test_client_record.id, 1, 1000, now)
        assert payment.pass_id == debited.id

        result = ledger.refund(
            client_id=test_client_record.id,
            payment_status=PaymentStatus.PAID,
            credits=1,
            amount=0,
            now=now + timedelta(minutes=5),
        )

        assert result.pass_id == debited.id
        db.refresh(debited)
        db.refresh(untouched)
        assert debited.credits_left == 5
        assert untouched.credits_left == 5

    def test_paid_refund_without_room_fails(self, db, test_client_record, now):
        create_credit_pass(db, test_client_record, credits=5)

        with pytest.raises(RefundTargetNotFoundException):
            CreditLedgerService(db).refund(
                client_id=test_client_record.id,
                payment_status=PaymentStatus.PAID,
                credits=1,
                amount=0,
                now=now,
            )

    def test_unpaid_refund_reduces_balance_by_charged_amount(self, db, now):
        client = create_client(db, unpaid_balance=2500)

        result = CreditLedgerService(db).refund(
            client_id=client.id,
            payment_status=PaymentStatus.UNPAID,
            credits=1,
            amount=1000,
            now=now,
        )

        assert result.unpaid_balance_reduced == 1000
        assert result.credits_refunded == 0
        db.refresh(client)
        assert client.unpaid_balance == 1500

    @pytest.mark.parametrize("payment_status", [PaymentStatus.COMPED, PaymentStatus.PENDING])
    def test_nothing_to_refund(self, db, test_client_record, now, payment_status):
        result = CreditLedgerService(db).refund(
            client_id=test_client_record.id,
            payment_status=payment_status,
            credits=0,
            amount=0,
            now=now,
        )

        assert not result.refunded


def test_credit_summary_counts_only_usable_passes(db, test_client_record, now):
    create_credit_pass(db, test_client_record, credits=10, credits_left=4)
    create_credit_pass(db, test_client_record, credits=5, expires_at=now - timedelta(days=1))
    create_credit_pass(db, test_client_record, credits=8, credits_left=3)
    test_client_record.unpaid_balance = 700
    db.commit()

    summary = CreditLedgerService(db).get_credit_summary(test_client_record.id, now)

    assert summary.usable_credits == 7
    assert summary.usable_passes == 2
    assert summary.unpaid_balance == 700
