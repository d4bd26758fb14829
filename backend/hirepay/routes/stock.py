# Overview: Flask API routes for per-shop stock; read-only views over the stock ledger.

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import SettlementError
from ..models import ShopProduct
from ..services import stock_service
from ..services.scope_service import require_shop_scope
from ..decorators import require_actor


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.get("/shops/<int:shop_id>")
@require_actor
def shop_stock_route(shop_id: int):
    """Stock counters for every product a shop carries."""
    try:
        require_shop_scope(g.actor, shop_id)
        rows = (
            ShopProduct.query
            .filter_by(shop_id=shop_id)
            .order_by(ShopProduct.product_id.asc())
            .all()
        )
        return jsonify({"shop_id": shop_id, "items": [r.to_dict() for r in rows]}), 200
    except SettlementError as e:
        return jsonify({"error": e.message, "code": e.code}), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list shop stock")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/shops/<int:shop_id>/low-stock")
@require_actor
def low_stock_route(shop_id: int):
    """Active products at or below their low-stock threshold."""
    try:
        require_shop_scope(g.actor, shop_id)
        rows = stock_service.get_low_stock(shop_id)
        return jsonify({"shop_id": shop_id, "items": [r.to_dict() for r in rows]}), 200
    except SettlementError as e:
        return jsonify({"error": e.message, "code": e.code}), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list low stock")
        return jsonify({"error": "Internal server error"}), 500
