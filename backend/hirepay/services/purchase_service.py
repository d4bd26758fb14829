# Overview: Purchase state machine; sale creation, payment application, item edits and overdue sweep.

"""
Purchase lifecycle

WHY: A purchase moves from creation through partial payments to completion,
and every step must keep totals, stock, wallet and documents consistent.

STATES:
- PENDING: nothing paid yet
- ACTIVE: partially paid
- COMPLETED: outstanding == 0; terminal and immutable
- OVERDUE: past due_date + grace_days (overdue sweep)
- DEFAULTED: OVERDUE for more than DEFAULT_AFTER_DAYS past due (overdue sweep)

COMPLETION CASCADE (runs exactly once, when a purchase first completes):
- stock is committed (CASH purchases complete at creation, so they commit then)
- the waybill is generated if absent and delivery_status becomes SCHEDULED
"""

from __future__ import annotations

import math
from datetime import datetime

from flask import current_app

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..models import BusinessPolicy, Customer, Payment, Purchase, PurchaseItem, Shop
from ..models.purchases import (
    VALID_PURCHASE_TYPES,
    PURCHASE_CASH,
    STATUS_PENDING,
    STATUS_ACTIVE,
    STATUS_COMPLETED,
    STATUS_OVERDUE,
    STATUS_DEFAULTED,
    METHOD_CASH,
    PAYMENT_COMPLETED,
)
from ..validation import coerce_int, coerce_optional_int, parse_items
from hirepay.time_utils import utcnow, add_days
from . import pricing_service, stock_service, wallet_service, document_service
from .audit_service import append_audit_event
from .concurrency import lock_for_update, run_with_retry
from .scope_service import (
    ActorContext,
    ADMIN_ROLES,
    SELLING_ROLES,
    get_purchase_in_scope,
    require_role,
    require_shop_scope,
    scoped_shop_ids,
)


def _next_purchase_number(customer_id: int) -> str:
    """HP-0001, HP-0002, ... per customer. Caller holds the customer row lock."""
    count = db.session.query(db.func.count(Purchase.id)).filter(Purchase.customer_id == customer_id).scalar() or 0
    return f"HP-{count + 1:04d}"


def _installments(purchase_type: str, tenor_days: int | None) -> int:
    if purchase_type == PURCHASE_CASH or not tenor_days:
        return 1
    return max(1, math.ceil(tenor_days / 30))


def _get_policy(business_id: int) -> BusinessPolicy | None:
    return db.session.query(BusinessPolicy).filter_by(business_id=business_id).first()


def _price_lines(shop_rows: dict, items: list[dict], purchase_type: str, keep_prices: dict | None = None) -> list[dict]:
    """Attach product name and unit price to each requested line."""
    keep_prices = keep_prices or {}
    lines = []
    for item in items:
        row = shop_rows[item["product_id"]]
        unit = keep_prices.get(item["product_id"])
        if unit is None:
            unit = pricing_service.resolve_unit_price(row, purchase_type)
        lines.append({
            "product_id": item["product_id"],
            "product_name": row.product.name,
            "quantity": item["quantity"],
            "unit_price_cents": unit,
            "total_price_cents": unit * item["quantity"],
        })
    return lines


def run_completion_cascade(purchase: Purchase, actor_user_id: int | None = None) -> None:
    """Stock commit and waybill for a purchase that just reached COMPLETED."""
    stock_service.commit_stock(purchase.shop_id, purchase.items)
    document_service.ensure_waybill(purchase, generated_by=actor_user_id)
    current_app.logger.info("Purchase %s completed (purchase_id=%s)", purchase.purchase_number, purchase.id)


def _mark_completed(purchase: Purchase) -> None:
    purchase.outstanding_balance_cents = 0
    purchase.status = STATUS_COMPLETED
    purchase.completed_at = utcnow()


# =============================================================================
# SALE CREATION
# =============================================================================

def create_sale(actor: ActorContext, payload: dict) -> Purchase:
    """
    Create a purchase with its items, initial payment and side effects.

    Payload:
        customer_id, purchase_type (CASH|LAYAWAY|CREDIT), items [{product_id, quantity}],
        down_payment_cents (non-CASH, default 0), tenor_days (non-CASH, >= 1), notes

    CASH: completed immediately, paid in full, stock committed, waybill issued.
    Non-CASH: PENDING / ACTIVE / COMPLETED by down payment; the wallet is
    debited by the outstanding balance.
    """
    payload = payload or {}
    purchase_type = payload.get("purchase_type")
    if purchase_type not in VALID_PURCHASE_TYPES:
        raise ValidationError(
            f"Invalid purchase type: {purchase_type}. Must be one of {VALID_PURCHASE_TYPES}"
        )
    customer_id = coerce_int(payload.get("customer_id"), "customer_id", minimum=1)
    items = parse_items(payload.get("items"))
    notes = payload.get("notes")

    if purchase_type == PURCHASE_CASH:
        down_payment = 0
        tenor_days = None
    else:
        down_payment = coerce_optional_int(payload.get("down_payment_cents"), "down_payment_cents", minimum=0, default=0)
        tenor_days = coerce_int(payload.get("tenor_days"), "tenor_days", minimum=1)

    def _op():
        require_role(actor, SELLING_ROLES)

        customer = lock_for_update(db.session.query(Customer).filter_by(id=customer_id)).first()
        if not customer or not customer.is_active:
            raise NotFoundError(f"Customer {customer_id} not found", details={"customer_id": customer_id})
        try:
            shop = require_shop_scope(actor, customer.shop_id)
        except NotFoundError:
            raise NotFoundError(f"Customer {customer_id} not found", details={"customer_id": customer_id})

        # Stock is re-validated under lock inside this transaction
        shop_rows = stock_service.ensure_available(shop.id, items)
        lines = _price_lines(shop_rows, items, purchase_type)

        policy = _get_policy(shop.business_id)
        totals = pricing_service.calculate_totals(lines, purchase_type, tenor_days, policy)

        if purchase_type == PURCHASE_CASH:
            paid, outstanding = totals.total_cents, 0
        else:
            paid, outstanding = pricing_service.apply_down_payment(totals.total_cents, down_payment)

        if outstanding == 0:
            status = STATUS_COMPLETED
        elif paid > 0:
            status = STATUS_ACTIVE
        else:
            status = STATUS_PENDING

        now = utcnow()
        purchase = Purchase(
            purchase_number=_next_purchase_number(customer.id),
            customer_id=customer.id,
            shop_id=shop.id,
            purchase_type=purchase_type,
            status=STATUS_PENDING,
            subtotal_cents=totals.subtotal_cents,
            interest_amount_cents=totals.interest_cents,
            total_amount_cents=totals.total_cents,
            down_payment_cents=paid,
            amount_paid_cents=paid,
            outstanding_balance_cents=outstanding,
            installments=_installments(purchase_type, tenor_days),
            tenor_days=tenor_days,
            start_date=now,
            due_date=add_days(now, tenor_days) if tenor_days else None,
            interest_type=policy.interest_type if (policy and purchase_type != PURCHASE_CASH) else None,
            interest_rate_bps=policy.interest_rate_bps if (policy and purchase_type != PURCHASE_CASH) else 0,
            notes=notes,
            created_by_user_id=actor.user_id,
        )
        db.session.add(purchase)
        for line in lines:
            purchase.items.append(PurchaseItem(**line))
        db.session.flush()

        payment = None
        if paid > 0:
            payment = Payment(
                purchase=purchase,
                amount_cents=paid,
                payment_method=METHOD_CASH,
                status=PAYMENT_COMPLETED,
                is_confirmed=True,
                confirmed_at=now,
                confirmed_by_user_id=actor.user_id,
                recorded_by_user_id=actor.user_id,
                notes="Full payment" if purchase_type == PURCHASE_CASH else "Down payment",
                paid_at=now,
            )
            db.session.add(payment)
            db.session.flush()

        wallet_service.debit_for_purchase(purchase, actor_user_id=actor.user_id)

        if status == STATUS_COMPLETED:
            _mark_completed(purchase)
            run_completion_cascade(purchase, actor_user_id=actor.user_id)
        else:
            purchase.status = status

        if payment is not None:
            document_service.create_progress_invoice(payment, purchase, totals.total_cents, confirmer=actor)

        append_audit_event(
            business_id=shop.business_id,
            actor_user_id=actor.user_id,
            action="PURCHASE_CREATED",
            entity_type="purchase",
            entity_id=purchase.id,
            metadata={
                "purchase_number": purchase.purchase_number,
                "purchase_type": purchase_type,
                "total_amount_cents": purchase.total_amount_cents,
                "outstanding_balance_cents": purchase.outstanding_balance_cents,
            },
        )

        db.session.commit()
        return purchase

    return run_with_retry(_op)


# =============================================================================
# PAYMENT APPLICATION
# =============================================================================

def apply_confirmed_amount(purchase: Purchase, amount_cents: int) -> bool:
    """
    Count a confirmed amount toward the purchase. Caller holds the row lock.

    Returns True when this amount drove the purchase to COMPLETED.
    """
    if purchase.is_completed:
        raise ValidationError("This purchase is already fully paid", details={"purchase_id": purchase.id})

    purchase.amount_paid_cents = (purchase.amount_paid_cents or 0) + amount_cents
    outstanding = max(0, purchase.total_amount_cents - purchase.amount_paid_cents)
    purchase.outstanding_balance_cents = outstanding

    if outstanding == 0:
        _mark_completed(purchase)
        return True
    if purchase.status == STATUS_PENDING:
        purchase.status = STATUS_ACTIVE
    return False


# =============================================================================
# ITEM EDITS
# =============================================================================

def edit_purchase_items(actor: ActorContext, purchase_id: int, items) -> Purchase:
    """
    Replace the items of an unfinished LAYAWAY / CREDIT purchase.

    Totals are recomputed with the interest terms stored on the purchase.
    The wallet receives an offsetting entry for the change in debt. A new
    total below the amount already paid is rejected.
    """
    parsed = parse_items(items)

    def _op():
        require_role(actor, ADMIN_ROLES)

        purchase = lock_for_update(db.session.query(Purchase).filter_by(id=purchase_id)).first()
        if not purchase:
            raise NotFoundError(f"Purchase {purchase_id} not found", details={"purchase_id": purchase_id})
        try:
            shop = require_shop_scope(actor, purchase.shop_id)
        except NotFoundError:
            raise NotFoundError(f"Purchase {purchase_id} not found", details={"purchase_id": purchase_id})

        if purchase.purchase_type == PURCHASE_CASH:
            raise ValidationError("Cash purchases cannot be edited", details={"purchase_id": purchase.id})
        if purchase.is_completed:
            raise ValidationError("This purchase is already fully paid", details={"purchase_id": purchase.id})

        shop_rows = stock_service.ensure_available(shop.id, parsed)
        kept_prices = {item.product_id: item.unit_price_cents for item in purchase.items}
        lines = _price_lines(shop_rows, parsed, purchase.purchase_type, keep_prices=kept_prices)

        totals = pricing_service.recalculate_totals(
            lines, purchase.interest_type, purchase.interest_rate_bps, purchase.tenor_days
        )
        if totals.total_cents < purchase.amount_paid_cents:
            raise ValidationError(
                f"New total of {totals.total_cents} is below the {purchase.amount_paid_cents} already paid",
                details={"total_amount_cents": totals.total_cents, "amount_paid_cents": purchase.amount_paid_cents},
            )

        previous_total = purchase.total_amount_cents
        previous_outstanding = purchase.outstanding_balance_cents
        new_outstanding = totals.total_cents - purchase.amount_paid_cents

        purchase.items.clear()
        db.session.flush()
        for line in lines:
            purchase.items.append(PurchaseItem(**line))

        purchase.subtotal_cents = totals.subtotal_cents
        purchase.interest_amount_cents = totals.interest_cents
        purchase.total_amount_cents = totals.total_cents
        purchase.outstanding_balance_cents = new_outstanding
        db.session.flush()

        wallet_service.adjust_for_debt_change(
            purchase, new_outstanding - previous_outstanding, actor_user_id=actor.user_id
        )

        if new_outstanding <= 0:
            _mark_completed(purchase)
            run_completion_cascade(purchase, actor_user_id=actor.user_id)

        append_audit_event(
            business_id=shop.business_id,
            actor_user_id=actor.user_id,
            action="PURCHASE_ITEMS_EDITED",
            entity_type="purchase",
            entity_id=purchase.id,
            metadata={
                "previous_total_cents": previous_total,
                "new_total_cents": totals.total_cents,
                "new_outstanding_cents": new_outstanding,
            },
        )

        db.session.commit()
        return purchase

    return run_with_retry(_op)


# =============================================================================
# OVERDUE SWEEP
# =============================================================================

def refresh_overdue_statuses(now: datetime | None = None) -> dict:
    """
    Move late purchases to OVERDUE, and long-overdue ones to DEFAULTED.

    COMPLETED purchases are never touched. Returns counts per new status.
    """
    def _op():
        current = now or utcnow()
        default_after = int(current_app.config.get("DEFAULT_AFTER_DAYS", 90))
        counts = {STATUS_OVERDUE: 0, STATUS_DEFAULTED: 0}

        rows = (
            db.session.query(Purchase, BusinessPolicy.grace_days, Shop.business_id)
            .join(Shop, Shop.id == Purchase.shop_id)
            .outerjoin(BusinessPolicy, BusinessPolicy.business_id == Shop.business_id)
            .filter(
                Purchase.status.in_([STATUS_PENDING, STATUS_ACTIVE, STATUS_OVERDUE]),
                Purchase.due_date.isnot(None),
            )
            .order_by(Purchase.id.asc())
            .all()
        )

        for purchase, grace_days, business_id in rows:
            grace = grace_days or 0
            previous = purchase.status

            if purchase.status in (STATUS_PENDING, STATUS_ACTIVE) and current > add_days(purchase.due_date, grace):
                purchase.status = STATUS_OVERDUE
            if purchase.status == STATUS_OVERDUE and current > add_days(purchase.due_date, default_after):
                purchase.status = STATUS_DEFAULTED

            if purchase.status != previous:
                counts[purchase.status] += 1
                append_audit_event(
                    business_id=business_id,
                    action=f"PURCHASE_{purchase.status}",
                    entity_type="purchase",
                    entity_id=purchase.id,
                    metadata={"previous_status": previous, "due_date": purchase.due_date.isoformat()},
                    occurred_at=current,
                )

        db.session.commit()
        return counts

    return run_with_retry(_op)


# =============================================================================
# QUERIES
# =============================================================================

def get_purchase(actor: ActorContext, purchase_id: int) -> Purchase:
    return get_purchase_in_scope(actor, purchase_id)


def list_purchases(actor: ActorContext, *, shop_id: int | None = None, status: str | None = None, limit: int = 200) -> list[Purchase]:
    if shop_id is not None:
        require_shop_scope(actor, shop_id)
        shop_ids = [shop_id]
    else:
        shop_ids = scoped_shop_ids(actor)

    q = db.session.query(Purchase).filter(Purchase.shop_id.in_(shop_ids))
    if status:
        q = q.filter(Purchase.status == status)
    return q.order_by(Purchase.created_at.desc(), Purchase.id.desc()).limit(limit).all()
