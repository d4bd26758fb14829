# Overview: Flask API routes for customer wallets; parses input and returns JSON responses.

# backend/hirepay/routes/wallet.py
"""
Customer Wallet API Routes

- Ledger listing (newest first)
- Deposits (top-ups)
- Manual adjustments (BUSINESS_ADMIN only, reason required)
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import SettlementError
from ..services import actions, wallet_service
from ..services.scope_service import ROLE_BUSINESS_ADMIN, get_customer_in_scope
from ..decorators import require_actor, require_role


wallet_bp = Blueprint("wallet", __name__, url_prefix="/api/wallet")


@wallet_bp.get("/customers/<int:customer_id>/transactions")
@require_actor
def wallet_transactions_route(customer_id: int):
    try:
        limit = min(request.args.get("limit", default=200, type=int), 500)
        customer = get_customer_in_scope(g.actor, customer_id)
        txns = wallet_service.get_wallet_transactions(g.actor, customer_id, limit=limit)
        return jsonify({
            "customer_id": customer.id,
            "wallet_balance_cents": customer.wallet_balance_cents,
            "transactions": [t.to_dict() for t in txns],
        }), 200
    except SettlementError as e:
        return jsonify({"error": e.message, "code": e.code}), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list wallet transactions")
        return jsonify({"error": "Internal server error"}), 500


@wallet_bp.post("/customers/<int:customer_id>/deposits")
@require_actor
def deposit_route(customer_id: int):
    """
    Top up a customer's wallet.

    Request body:
    {
        "amount_cents": 5000,
        "reference": "MM-778",  (optional)
        "description": "..."  (optional)
    }
    """
    result = actions.deposit_funds(g.actor, customer_id, request.get_json(silent=True) or {})
    return jsonify(result.to_dict()), result.http_status


@wallet_bp.post("/customers/<int:customer_id>/adjustments")
@require_actor
@require_role(ROLE_BUSINESS_ADMIN)
def adjustment_route(customer_id: int):
    """
    Manual wallet correction.

    Request body:
    {
        "amount_cents": 1500,
        "is_addition": false,
        "reason": "Duplicate deposit reversed"
    }
    """
    result = actions.adjust_wallet(g.actor, customer_id, request.get_json(silent=True) or {})
    return jsonify(result.to_dict()), result.http_status
