# Overview: Flask API routes for payment settlement; parses input and returns JSON responses.

# backend/hirepay/routes/payments.py
"""
Payment Settlement API Routes

DESIGN:
- Record payments against purchases (collectors, staff, admins)
- Review queue of pending payments
- Confirm or reject pending payments (admins)

SECURITY:
- Debt collectors may only record for customers assigned to them
- Confirm / reject require BUSINESS_ADMIN or SHOP_ADMIN
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import SettlementError
from ..services import actions, settlement_service
from ..services.scope_service import ADMIN_ROLES
from ..decorators import require_actor, require_role


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.post("/")
@require_actor
def record_payment_route():
    """
    Record a payment.

    Request body:
    {
        "purchase_id": 123,
        "amount_cents": 10000,
        "payment_method": "MOBILE_MONEY",
        "auto_confirm": false,  (admins only)
        "collector_id": 4,  (optional)
        "reference": "MM-12345",  (optional)
        "notes": "...",  (optional)
        "paid_at": "2026-01-01T10:00:00Z"  (optional)
    }

    PAYMENT METHODS:
    - CASH, MOBILE_MONEY, BANK_TRANSFER, CARD: pending until confirmed
    - WALLET: drawn from the customer's wallet and confirmed immediately

    Returns:
        201: {payment_id, awaiting_confirmation, payment}
        400: Invalid input or amount above outstanding balance
        403: Collector not assigned to the customer
    """
    result = actions.record_payment(g.actor, request.get_json(silent=True) or {})
    return jsonify(result.to_dict()), result.http_status


@payments_bp.get("/pending")
@require_actor
def pending_payments_route():
    """Payments awaiting review. Optional ?shop_id= filter."""
    try:
        shop_id = request.args.get("shop_id", type=int)
        payments = settlement_service.get_pending_payments(g.actor, shop_id=shop_id)
        return jsonify({"payments": [p.to_dict() for p in payments]}), 200
    except SettlementError as e:
        return jsonify({"error": e.message, "code": e.code}), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list pending payments")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.post("/<int:payment_id>/confirm")
@require_actor
@require_role(*ADMIN_ROLES)
def confirm_payment_route(payment_id: int):
    """
    Confirm a pending payment.

    Returns:
        200: {purchase_completed, payment, purchase, progress_invoice}
        409: Payment already confirmed or rejected
    """
    result = actions.confirm_payment(g.actor, payment_id)
    return jsonify(result.to_dict()), result.http_status


@payments_bp.post("/<int:payment_id>/reject")
@require_actor
@require_role(*ADMIN_ROLES)
def reject_payment_route(payment_id: int):
    """
    Reject a pending payment.

    Request body:
    {
        "reason": "Mobile money reference not found"
    }
    """
    payload = request.get_json(silent=True) or {}
    result = actions.reject_payment(g.actor, payment_id, payload.get("reason"))
    return jsonify(result.to_dict()), result.http_status
