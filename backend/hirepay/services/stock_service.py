# Overview: Service-layer operations for per-shop stock counters.

from __future__ import annotations

from typing import Iterable

from ..extensions import db
from ..errors import InsufficientStock, NotFoundError
from ..models import ShopProduct
from .concurrency import lock_for_update
"""
Stock ledger invariants (authoritative)

- Stock is a counter per (shop_id, product_id) on ShopProduct; the same
  catalog product has independent stock in every shop.
- stock_quantity never goes negative (checked here and by a DB constraint).
- CASH purchases commit stock at sale creation. LAYAWAY/CREDIT purchases commit
  stock only when the purchase first reaches COMPLETED.
- Every function here runs inside the caller's transaction and never commits.
"""


def _item_value(item, key: str):
    if isinstance(item, dict):
        return item.get(key)
    return getattr(item, key, None)


def aggregate_quantities(items: Iterable) -> dict[int, int]:
    """Sum requested quantities per product_id (repeated lines are merged)."""
    totals: dict[int, int] = {}
    for item in items:
        product_id = int(_item_value(item, "product_id"))
        totals[product_id] = totals.get(product_id, 0) + int(_item_value(item, "quantity"))
    return totals


def _locked_shop_products(shop_id: int, product_ids: Iterable[int]) -> dict[int, ShopProduct]:
    ids = sorted(set(product_ids))
    if not ids:
        return {}
    rows = lock_for_update(
        db.session.query(ShopProduct)
        .filter(ShopProduct.shop_id == shop_id, ShopProduct.product_id.in_(ids))
        .order_by(ShopProduct.product_id)
    ).all()
    return {row.product_id: row for row in rows}


def ensure_available(shop_id: int, items: Iterable) -> dict[int, ShopProduct]:
    """
    Lock the shop's stock rows for the requested products and verify quantity.

    Returns the locked rows keyed by product_id so callers can reuse them.

    Raises:
        NotFoundError: product not stocked by this shop
        InsufficientStock: requested quantity above stock_quantity
    """
    requested = aggregate_quantities(items)
    rows = _locked_shop_products(shop_id, requested.keys())

    for product_id, qty in requested.items():
        row = rows.get(product_id)
        if row is None or not row.is_active:
            raise NotFoundError(
                f"Product {product_id} is not available in this shop",
                details={"product_id": product_id, "shop_id": shop_id},
            )
        if row.stock_quantity < qty:
            raise InsufficientStock(
                f"Insufficient stock for {row.product.name}. Only {row.stock_quantity} available.",
                details={
                    "product_id": product_id,
                    "requested_quantity": qty,
                    "available": row.stock_quantity,
                },
            )
    return rows


def commit_stock(shop_id: int, items: Iterable) -> None:
    """Decrement stock for every item. Re-validates under lock first."""
    requested = aggregate_quantities(items)
    rows = ensure_available(shop_id, items)
    for product_id, qty in requested.items():
        rows[product_id].stock_quantity -= qty
    db.session.flush()


def restore_stock(shop_id: int, items: Iterable) -> None:
    """Exact inverse of commit_stock."""
    requested = aggregate_quantities(items)
    rows = _locked_shop_products(shop_id, requested.keys())
    for product_id, qty in requested.items():
        row = rows.get(product_id)
        if row is None:
            raise NotFoundError(
                f"Product {product_id} is not stocked by shop {shop_id}",
                details={"product_id": product_id, "shop_id": shop_id},
            )
        row.stock_quantity += qty
    db.session.flush()


def get_stock_level(shop_id: int, product_id: int) -> int:
    row = db.session.query(ShopProduct).filter_by(shop_id=shop_id, product_id=product_id).first()
    return row.stock_quantity if row else 0


def get_low_stock(shop_id: int) -> list[ShopProduct]:
    """Active shop products at or below their low-stock threshold."""
    return (
        db.session.query(ShopProduct)
        .filter(
            ShopProduct.shop_id == shop_id,
            ShopProduct.is_active.is_(True),
            ShopProduct.stock_quantity <= ShopProduct.low_stock_threshold,
        )
        .order_by(ShopProduct.stock_quantity.asc(), ShopProduct.id.asc())
        .all()
    )
