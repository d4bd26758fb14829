# Overview: Pytest coverage for recording, confirming and rejecting payments.

from datetime import datetime

import pytest

from hirepay.errors import (
    AlreadyConfirmed,
    AlreadyRejected,
    InsufficientWalletBalance,
    NotFoundError,
    OverpaymentRejected,
    PermissionDenied,
    ValidationError,
)
from hirepay.models import AuditEvent, Payment, ProgressInvoice, Purchase, WalletTransaction, Waybill
from hirepay.services import actions, settlement_service, stock_service, wallet_service


@pytest.fixture
def credit_purchase(db_session, policy, customer, products, sales_actor, sell):
    """Fridge on CREDIT: total 1100.00, 200.00 down, 900.00 outstanding."""
    return sell(sales_actor, customer, [(products["fridge"], 1)], "CREDIT", down_payment_cents=20000, tenor_days=60)


def _wallet_types(db_session, customer_id):
    rows = (
        db_session.query(WalletTransaction)
        .filter_by(customer_id=customer_id)
        .order_by(WalletTransaction.id.asc())
        .all()
    )
    return [(t.type, t.amount_cents) for t in rows]


class TestConfirmation:
    def test_final_payment_completes_purchase(self, db_session, shop, customer, products, credit_purchase, admin_actor, shop_admin_actor):
        payment = settlement_service.record_payment(admin_actor, credit_purchase.id, 90000, "MOBILE_MONEY", reference="MM-1")
        assert payment.status == "PENDING"
        assert not payment.is_confirmed

        result = settlement_service.confirm_payment(shop_admin_actor, payment.id)

        assert result.purchase_completed
        assert result.payment.status == "COMPLETED"
        assert result.payment.confirmed_by_user_id == shop_admin_actor.user_id

        purchase = db_session.get(Purchase, credit_purchase.id)
        assert purchase.status == "COMPLETED"
        assert purchase.amount_paid_cents == 110000
        assert purchase.outstanding_balance_cents == 0
        assert purchase.delivery_status == "SCHEDULED"

        assert _wallet_types(db_session, customer.id) == [("PURCHASE", 90000), ("DEPOSIT", 90000)]
        assert customer.wallet_balance_cents == 0

        assert stock_service.get_stock_level(shop.id, products["fridge"].id) == 2
        assert db_session.query(Waybill).filter_by(purchase_id=purchase.id).count() == 1

        invoices = db_session.query(ProgressInvoice).filter_by(payment_id=payment.id).all()
        assert len(invoices) == 1
        invoice = invoices[0]
        assert invoice.previous_balance_cents == 90000
        assert invoice.new_balance_cents == 0
        assert invoice.total_amount_paid_cents == 110000
        assert invoice.is_purchase_completed
        assert invoice.waybill_generated
        assert invoice.confirmed_by_name == "Kofi Manager"
        assert result.progress_invoice.id == invoice.id

        assert db_session.query(AuditEvent).filter_by(action="PAYMENT_CONFIRMED", entity_id=payment.id).count() == 1

    def test_partial_payment_keeps_purchase_active(self, db_session, shop, products, credit_purchase, admin_actor):
        payment = settlement_service.record_payment(admin_actor, credit_purchase.id, 30000, "CASH")
        result = settlement_service.confirm_payment(admin_actor, payment.id)

        assert not result.purchase_completed
        assert result.purchase.status == "ACTIVE"
        assert result.purchase.outstanding_balance_cents == 60000
        assert stock_service.get_stock_level(shop.id, products["fridge"].id) == 3
        assert db_session.query(Waybill).filter_by(purchase_id=credit_purchase.id).count() == 0

    def test_first_payment_activates_pending_purchase(self, db_session, policy, customer, products, sales_actor, admin_actor, sell):
        purchase = sell(sales_actor, customer, [(products["kettle"], 1)], "LAYAWAY", tenor_days=30)
        assert purchase.status == "PENDING"

        payment = settlement_service.record_payment(admin_actor, purchase.id, 1000, "CASH")
        settlement_service.confirm_payment(admin_actor, payment.id)

        assert db_session.get(Purchase, purchase.id).status == "ACTIVE"

    def test_sold_out_stock_blocks_completion(self, db_session, shop, policy, customer, other_customer, products, sales_actor, admin_actor, sell):
        """Stock is only reserved at completion; a sell-out in between fails the final confirmation."""
        layaway = sell(sales_actor, customer, [(products["fridge"], 3)], "LAYAWAY", tenor_days=30)
        assert layaway.total_amount_cents == 330000
        sell(sales_actor, other_customer, [(products["fridge"], 3)], "CASH")
        assert stock_service.get_stock_level(shop.id, products["fridge"].id) == 0

        payment = settlement_service.record_payment(admin_actor, layaway.id, 330000, "MOBILE_MONEY")
        payment_id, layaway_id = payment.id, layaway.id
        result = actions.confirm_payment(admin_actor, payment_id)

        assert result.code == "insufficient_stock"
        assert result.error == "Insufficient stock for Refrigerator. Only 0 available."
        assert db_session.get(Payment, payment_id).status == "PENDING"
        purchase = db_session.get(Purchase, layaway_id)
        assert purchase.status == "PENDING"
        assert purchase.outstanding_balance_cents == 330000
        assert db_session.query(Waybill).filter_by(purchase_id=layaway_id).count() == 0

    def test_confirm_twice(self, db_session, credit_purchase, admin_actor):
        payment = settlement_service.record_payment(admin_actor, credit_purchase.id, 10000, "CARD")
        settlement_service.confirm_payment(admin_actor, payment.id)

        with pytest.raises(AlreadyConfirmed) as exc:
            settlement_service.confirm_payment(admin_actor, payment.id)
        assert str(exc.value) == "Payment is already confirmed"
        db_session.rollback()

        assert db_session.get(Purchase, credit_purchase.id).amount_paid_cents == 30000
        assert db_session.query(ProgressInvoice).filter_by(payment_id=payment.id).count() == 1

    def test_balance_rechecked_at_confirmation(self, db_session, credit_purchase, admin_actor):
        first = settlement_service.record_payment(admin_actor, credit_purchase.id, 60000, "MOBILE_MONEY")
        second = settlement_service.record_payment(admin_actor, credit_purchase.id, 60000, "MOBILE_MONEY")

        settlement_service.confirm_payment(admin_actor, first.id)
        with pytest.raises(OverpaymentRejected):
            settlement_service.confirm_payment(admin_actor, second.id)
        db_session.rollback()

        assert db_session.get(Payment, second.id).status == "PENDING"
        assert db_session.get(Purchase, credit_purchase.id).outstanding_balance_cents == 30000

    def test_other_business_cannot_confirm(self, db_session, credit_purchase, admin_actor, admin_actor_b):
        payment = settlement_service.record_payment(admin_actor, credit_purchase.id, 10000, "CASH")
        with pytest.raises(NotFoundError):
            settlement_service.confirm_payment(admin_actor_b, payment.id)

    def test_collector_cannot_confirm(self, db_session, credit_purchase, admin_actor, collector_actor):
        payment = settlement_service.record_payment(admin_actor, credit_purchase.id, 10000, "CASH")
        with pytest.raises(PermissionDenied):
            settlement_service.confirm_payment(collector_actor, payment.id)


class TestRejection:
    def test_reject_leaves_purchase_untouched(self, db_session, customer, credit_purchase, admin_actor):
        payment = settlement_service.record_payment(admin_actor, credit_purchase.id, 30000, "MOBILE_MONEY")
        rejected = settlement_service.reject_payment(admin_actor, payment.id, "Reference not found")

        assert rejected.status == "MISSED"
        assert rejected.rejection_reason == "Reference not found"
        assert rejected.rejected_by_user_id == admin_actor.user_id
        assert db_session.get(Purchase, credit_purchase.id).outstanding_balance_cents == 90000
        assert customer.wallet_balance_cents == -90000
        assert db_session.query(ProgressInvoice).filter_by(payment_id=payment.id).count() == 0

    def test_cannot_reject_confirmed_payment(self, db_session, credit_purchase, admin_actor):
        payment = settlement_service.record_payment(admin_actor, credit_purchase.id, 90000, "MOBILE_MONEY")
        settlement_service.confirm_payment(admin_actor, payment.id)

        with pytest.raises(AlreadyConfirmed) as exc:
            settlement_service.reject_payment(admin_actor, payment.id, "Changed my mind")
        assert str(exc.value) == "Cannot reject a confirmed payment"
        db_session.rollback()

        assert db_session.get(Payment, payment.id).status == "COMPLETED"
        assert db_session.get(Purchase, credit_purchase.id).status == "COMPLETED"

    def test_rejected_payment_is_terminal(self, db_session, credit_purchase, admin_actor):
        payment = settlement_service.record_payment(admin_actor, credit_purchase.id, 30000, "CASH")
        settlement_service.reject_payment(admin_actor, payment.id, "Counterfeit notes")

        with pytest.raises(AlreadyRejected):
            settlement_service.confirm_payment(admin_actor, payment.id)
        db_session.rollback()
        with pytest.raises(AlreadyRejected):
            settlement_service.reject_payment(admin_actor, payment.id, "Again")

    def test_reason_required(self, db_session, credit_purchase, admin_actor):
        payment = settlement_service.record_payment(admin_actor, credit_purchase.id, 30000, "CASH")
        with pytest.raises(ValidationError):
            settlement_service.reject_payment(admin_actor, payment.id, "  ")


class TestRecording:
    def test_overpayment_rejected(self, db_session, credit_purchase, admin_actor):
        with pytest.raises(OverpaymentRejected) as exc:
            settlement_service.record_payment(admin_actor, credit_purchase.id, 100000, "CASH")
        assert str(exc.value) == "Amount cannot exceed outstanding balance of ₵900.00"

    def test_completed_purchase_takes_no_payments(self, db_session, customer, products, sales_actor, admin_actor, sell):
        purchase = sell(sales_actor, customer, [(products["radio"], 1)], "CASH")
        with pytest.raises(ValidationError) as exc:
            settlement_service.record_payment(admin_actor, purchase.id, 100, "CASH")
        assert str(exc.value) == "This purchase is already fully paid"

    def test_invalid_method_and_amount(self, db_session, credit_purchase, admin_actor):
        with pytest.raises(ValidationError):
            settlement_service.record_payment(admin_actor, credit_purchase.id, 100, "CHEQUE")
        with pytest.raises(ValidationError):
            settlement_service.record_payment(admin_actor, credit_purchase.id, 0, "CASH")
        with pytest.raises(ValidationError):
            settlement_service.record_payment(admin_actor, credit_purchase.id, "12.5", "CASH")

    def test_paid_at_is_parsed(self, db_session, credit_purchase, admin_actor):
        payment = settlement_service.record_payment(
            admin_actor, credit_purchase.id, 5000, "BANK_TRANSFER", paid_at="2026-01-05T10:00:00Z"
        )
        assert payment.paid_at == datetime(2026, 1, 5, 10, 0, 0)

    @pytest.mark.parametrize("paid_at", ["yesterday", "2026-13-45", 12345])
    def test_malformed_paid_at_is_rejected(self, db_session, credit_purchase, admin_actor, paid_at):
        with pytest.raises(ValidationError) as exc:
            settlement_service.record_payment(admin_actor, credit_purchase.id, 500, "CASH", paid_at=paid_at)
        assert str(exc.value) == "paid_at must be an ISO-8601 datetime"
        assert db_session.query(Payment).filter_by(purchase_id=credit_purchase.id).count() == 1

    def test_malformed_paid_at_is_a_validation_result(self, db_session, credit_purchase, admin_actor):
        result = actions.record_payment(admin_actor, {
            "purchase_id": credit_purchase.id,
            "amount_cents": 500,
            "payment_method": "CASH",
            "paid_at": "yesterday",
        })
        assert result.code == "validation_error"
        assert result.http_status == 400

    def test_admin_auto_confirm(self, db_session, credit_purchase, admin_actor):
        payment = settlement_service.record_payment(admin_actor, credit_purchase.id, 5000, "CASH", auto_confirm=True)
        assert payment.is_confirmed
        assert db_session.query(ProgressInvoice).filter_by(payment_id=payment.id).count() == 1


class TestWalletPayments:
    def test_wallet_payment_confirms_immediately(self, db_session, customer, credit_purchase, admin_actor):
        wallet_service.deposit_funds(admin_actor, customer.id, 100000)
        assert customer.wallet_balance_cents == 10000

        payment = settlement_service.record_payment(admin_actor, credit_purchase.id, 10000, "WALLET")

        assert payment.is_confirmed
        assert payment.status == "COMPLETED"
        assert db_session.get(Purchase, credit_purchase.id).outstanding_balance_cents == 80000
        assert _wallet_types(db_session, customer.id)[-2:] == [("PURCHASE", 10000), ("DEPOSIT", 10000)]
        assert customer.wallet_balance_cents == 10000

    def test_wallet_must_cover_amount(self, db_session, customer, credit_purchase, admin_actor):
        with pytest.raises(InsufficientWalletBalance):
            settlement_service.record_payment(admin_actor, credit_purchase.id, 1000, "WALLET")
        db_session.rollback()

        assert db_session.query(Payment).filter_by(purchase_id=credit_purchase.id, payment_method="WALLET").count() == 0
        assert customer.wallet_balance_cents == -90000


class TestCollectors:
    def test_collector_records_for_assigned_customer(self, db_session, credit_purchase, staff, collector_actor, admin_actor):
        mine = settlement_service.record_payment(collector_actor, credit_purchase.id, 10000, "MOBILE_MONEY")
        theirs = settlement_service.record_payment(admin_actor, credit_purchase.id, 5000, "CASH")

        assert mine.collector_id == collector_actor.staff_id
        assert not mine.is_confirmed

        assert [p.id for p in settlement_service.get_pending_payments(collector_actor)] == [mine.id]
        assert [p.id for p in settlement_service.get_pending_payments(admin_actor)] == [mine.id, theirs.id]

    def test_collector_blocked_for_unassigned_customer(self, db_session, policy, other_customer, products, sales_actor, collector_actor, sell):
        purchase = sell(sales_actor, other_customer, [(products["radio"], 1)], "CREDIT", tenor_days=30)

        with pytest.raises(PermissionDenied) as exc:
            settlement_service.record_payment(collector_actor, purchase.id, 1000, "CASH")
        assert str(exc.value) == "You can only record payments for customers assigned to you"

    def test_collector_cannot_auto_confirm(self, db_session, credit_purchase, collector_actor):
        with pytest.raises(PermissionDenied) as exc:
            settlement_service.record_payment(collector_actor, credit_purchase.id, 1000, "CASH", auto_confirm=True)
        assert str(exc.value) == "Only admins can confirm payments"

    def test_confirmed_payment_names_collector(self, db_session, credit_purchase, collector_actor, admin_actor):
        payment = settlement_service.record_payment(collector_actor, credit_purchase.id, 10000, "MOBILE_MONEY")
        result = settlement_service.confirm_payment(admin_actor, payment.id)

        assert result.progress_invoice.collector_name == "Yaw Collector"
        assert result.progress_invoice.confirmed_by_name == "Ama Owner"


class TestReceipts:
    def test_receipt_sent_after_confirmation(self, app, db_session, credit_purchase, admin_actor, monkeypatch):
        sent = []
        monkeypatch.setitem(app.config, "PAYMENT_RECEIPT_SENDER", sent.append)

        payment = settlement_service.record_payment(admin_actor, credit_purchase.id, 10000, "CASH")
        assert sent == []

        settlement_service.confirm_payment(admin_actor, payment.id)
        assert sent == [payment.id]

    def test_failed_receipt_does_not_undo_settlement(self, app, db_session, credit_purchase, admin_actor, monkeypatch):
        def _broken_sender(payment_id):
            raise RuntimeError("SMS gateway down")

        monkeypatch.setitem(app.config, "PAYMENT_RECEIPT_SENDER", _broken_sender)

        payment = settlement_service.record_payment(admin_actor, credit_purchase.id, 90000, "MOBILE_MONEY")
        result = settlement_service.confirm_payment(admin_actor, payment.id)

        assert result.purchase_completed
        db_session.expire_all()
        assert db_session.get(Payment, payment.id).is_confirmed
        assert db_session.get(Purchase, credit_purchase.id).status == "COMPLETED"
