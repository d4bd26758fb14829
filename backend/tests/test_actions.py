# Overview: Pytest coverage for the ActionResult workflow boundary.

from hirepay.models import Purchase
from hirepay.services import actions, purchase_service


class TestActionResults:
    def test_successful_sale(self, db_session, policy, customer, products, sales_actor):
        result = actions.create_sale(sales_actor, {
            "customer_id": customer.id,
            "purchase_type": "CREDIT",
            "items": [{"product_id": products["fridge"].id, "quantity": 1}],
            "down_payment_cents": 20000,
            "tenor_days": 60,
        })

        assert result.success
        assert result.http_status == 201
        assert result.data["status"] == "ACTIVE"
        assert result.data["totals"]["total_amount_cents"] == 110000
        assert result.data["totals"]["outstanding_balance_cents"] == 90000
        assert result.data["due_date"].endswith("Z")

    def test_expected_failure_is_a_result(self, db_session, policy, customer, products, sales_actor):
        result = actions.create_sale(sales_actor, {
            "customer_id": customer.id,
            "purchase_type": "CREDIT",
            "items": [{"product_id": products["fridge"].id, "quantity": 5}],
            "tenor_days": 30,
        })

        assert not result.success
        assert result.code == "insufficient_stock"
        assert result.http_status == 400
        assert result.error == "Insufficient stock for Refrigerator. Only 3 available."
        assert result.to_dict() == {
            "success": False,
            "error": result.error,
            "code": "insufficient_stock",
            "details": result.details,
        }

    def test_unexpected_failure_is_reported_generically(self, db_session, customer, sales_actor, monkeypatch):
        def _explode(actor, payload):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(purchase_service, "create_sale", _explode)
        result = actions.create_sale(sales_actor, {"customer_id": customer.id})

        assert not result.success
        assert result.error == "Failed to create sale"
        assert result.code == "internal_error"
        assert result.http_status == 500

    def test_failed_action_rolls_back(self, db_session, policy, customer, products, sales_actor):
        result = actions.create_sale(sales_actor, {
            "customer_id": customer.id,
            "purchase_type": "LAYAWAY",
            "items": [{"product_id": products["radio"].id, "quantity": 1}],
            "tenor_days": 365,
        })

        assert result.code == "tenor_exceeded"
        assert db_session.query(Purchase).count() == 0


class TestPaymentActions:
    def test_record_and_confirm(self, db_session, policy, customer, products, sales_actor, admin_actor, sell):
        purchase = sell(sales_actor, customer, [(products["fridge"], 1)], "CREDIT", down_payment_cents=20000, tenor_days=60)

        recorded = actions.record_payment(admin_actor, {
            "purchase_id": purchase.id,
            "amount_cents": 90000,
            "payment_method": "MOBILE_MONEY",
        })
        assert recorded.http_status == 201
        assert recorded.data["awaiting_confirmation"] is True

        confirmed = actions.confirm_payment(admin_actor, recorded.data["payment_id"])
        assert confirmed.success
        assert confirmed.data["purchase_completed"] is True
        assert confirmed.data["purchase"]["status"] == "COMPLETED"
        assert confirmed.data["progress_invoice"]["new_balance_cents"] == 0

        again = actions.confirm_payment(admin_actor, recorded.data["payment_id"])
        assert again.code == "already_confirmed"
        assert again.http_status == 409

        rejected = actions.reject_payment(admin_actor, recorded.data["payment_id"], "Too late")
        assert rejected.code == "already_confirmed"

    def test_adjust_wallet_defaults_to_addition(self, db_session, customer, admin_actor):
        result = actions.adjust_wallet(admin_actor, customer.id, {"amount_cents": 500, "reason": "Goodwill"})
        assert result.success
        assert result.data["transaction"]["type"] == "ADJUSTMENT_CREDIT"
        assert result.data["transaction"]["balance_after_cents"] == 500

    def test_deposit_rejects_decimal_amount(self, db_session, customer, admin_actor):
        result = actions.deposit_funds(admin_actor, customer.id, {"amount_cents": 12.5})
        assert result.code == "validation_error"
