# Overview: Flask API routes for purchases; parses input and returns JSON responses.

# backend/hirepay/routes/purchases.py
"""
Purchase API Routes

DESIGN:
- Create CASH / LAYAWAY / CREDIT purchases
- Edit items of an unfinished installment purchase
- Generate waybills and purchase invoices on demand

SECURITY:
- Every route requires an actor (see decorators.require_actor)
- Shop scope is enforced in the services; out-of-scope ids return 404
- Item edits and waybills are admin-only
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import SettlementError
from ..services import actions, purchase_service
from ..services.scope_service import ADMIN_ROLES, SELLING_ROLES
from ..decorators import require_actor, require_role


purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")


# =============================================================================
# PURCHASE CREATION
# =============================================================================

@purchases_bp.post("/")
@require_actor
@require_role(*SELLING_ROLES)
def create_purchase_route():
    """
    Create a purchase.

    Request body:
    {
        "customer_id": 12,
        "purchase_type": "CREDIT",
        "items": [{"product_id": 3, "quantity": 2}],
        "down_payment_cents": 20000,  (non-CASH, optional)
        "tenor_days": 60,  (non-CASH, required)
        "notes": "..."  (optional)
    }

    Returns:
        201: {purchase_id, purchase_number, status, totals, due_date}
        400: Invalid input, insufficient stock, tenor/policy problems
        404: Customer or product not found in scope
    """
    result = actions.create_sale(g.actor, request.get_json(silent=True) or {})
    return jsonify(result.to_dict()), result.http_status


# =============================================================================
# PURCHASE QUERIES
# =============================================================================

@purchases_bp.get("/")
@require_actor
def list_purchases_route():
    """List purchases in scope. Optional ?shop_id= and ?status= filters."""
    try:
        shop_id = request.args.get("shop_id", type=int)
        status = request.args.get("status")
        limit = min(request.args.get("limit", default=200, type=int), 500)
        purchases = purchase_service.list_purchases(g.actor, shop_id=shop_id, status=status, limit=limit)
        return jsonify({"purchases": [p.to_dict() for p in purchases]}), 200
    except SettlementError as e:
        return jsonify({"error": e.message, "code": e.code}), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list purchases")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.get("/<int:purchase_id>")
@require_actor
def get_purchase_route(purchase_id: int):
    """Purchase with items, payments and document references."""
    try:
        purchase = purchase_service.get_purchase(g.actor, purchase_id)
        data = purchase.to_dict(include_items=True)
        data["payments"] = [p.to_dict() for p in purchase.payments]
        data["waybill"] = purchase.waybill.to_dict() if purchase.waybill else None
        data["purchase_invoice"] = purchase.purchase_invoice.to_dict() if purchase.purchase_invoice else None
        return jsonify({"purchase": data}), 200
    except SettlementError as e:
        return jsonify({"error": e.message, "code": e.code}), e.http_status
    except Exception:
        current_app.logger.exception("Failed to get purchase")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# PURCHASE CHANGES
# =============================================================================

@purchases_bp.put("/<int:purchase_id>/items")
@require_actor
@require_role(*ADMIN_ROLES)
def edit_purchase_items_route(purchase_id: int):
    """
    Replace the items of an unfinished LAYAWAY / CREDIT purchase.

    Request body:
    {
        "items": [{"product_id": 3, "quantity": 1}]
    }
    """
    payload = request.get_json(silent=True) or {}
    result = actions.edit_purchase_items(g.actor, purchase_id, payload.get("items"))
    return jsonify(result.to_dict()), result.http_status


@purchases_bp.post("/<int:purchase_id>/waybill")
@require_actor
@require_role(*ADMIN_ROLES)
def generate_waybill_route(purchase_id: int):
    """
    Generate the purchase's waybill. Fails with 409 if one exists.

    Optional body overrides: recipient_name, recipient_phone, delivery_address,
    delivery_city, delivery_region, special_instructions.
    """
    payload = request.get_json(silent=True) or {}
    result = actions.generate_waybill(g.actor, purchase_id, payload)
    return jsonify(result.to_dict()), result.http_status


@purchases_bp.post("/<int:purchase_id>/invoice")
@require_actor
@require_role(*SELLING_ROLES)
def generate_purchase_invoice_route(purchase_id: int):
    """Generate the purchase invoice (once per purchase)."""
    result = actions.generate_purchase_invoice(g.actor, purchase_id)
    return jsonify(result.to_dict()), result.http_status
