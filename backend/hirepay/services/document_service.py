# Overview: Service-layer operations for settlement documents; waybills, invoices and numbering.

from __future__ import annotations

import secrets
import string
import time

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import (
    DuplicateDocumentNumber,
    NotFoundError,
    ValidationError,
    WaybillAlreadyExists,
)
from ..models import (
    DocumentSequence,
    ProgressInvoice,
    Purchase,
    PurchaseInvoice,
    ShopPaymentChannel,
    StaffMember,
    Waybill,
)
from ..models.purchases import DELIVERY_PENDING, DELIVERY_SCHEDULED
from hirepay.time_utils import utcnow
from .audit_service import append_audit_event
from .concurrency import lock_for_update, run_with_retry
from .scope_service import ActorContext, ADMIN_ROLES, SELLING_ROLES, require_role, require_shop_scope
"""
Document invariants (authoritative)

- At most one Waybill per purchase, one ProgressInvoice per payment and one
  PurchaseInvoice per purchase (unique FK columns back this up).
- Documents are immutable snapshots; nothing here updates an existing one.
- Unique-suffix numbers (WB-<year>-<suffix>, INV-<year>-<suffix>) are never
  derived from a row count. A colliding number is retried with a fresh suffix
  inside a savepoint; DuplicateDocumentNumber is raised only after
  DOCUMENT_NUMBER_ATTEMPTS collisions.
- Purchase invoice numbers come from the per-business DocumentSequence.
"""

DOC_TYPE_PURCHASE_INVOICE = "PURCHASE_INVOICE"
_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    out = []
    while value:
        value, rem = divmod(value, 36)
        out.append(_SUFFIX_ALPHABET[26 + rem] if rem < 10 else _SUFFIX_ALPHABET[rem - 10])
    return "".join(reversed(out))


def generate_suffix() -> str:
    """Millisecond timestamp in base 36 plus four random characters."""
    stamp = _base36(int(time.time() * 1000))
    rand = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(4))
    return f"{stamp}{rand}"


def waybill_number(year: int) -> str:
    return f"WB-{year}-{generate_suffix()}"


def progress_invoice_number(year: int) -> str:
    return f"INV-{year}-{generate_suffix()}"


def _insert_with_unique_number(build, make_number, number_column, conflict_check=None):
    """
    Insert a document with a unique-suffix number, retrying on collision.

    build(number) returns an unsaved model instance. conflict_check(), when
    given, runs after an IntegrityError and may raise a more specific error
    (e.g. another request created the document for the same purchase).
    """
    attempts = int(current_app.config.get("DOCUMENT_NUMBER_ATTEMPTS", 5))
    model = number_column.class_
    tried = []

    # Pending domain changes go out first so the savepoint nests inside them
    db.session.flush()

    for _ in range(attempts):
        number = make_number()
        tried.append(number)
        if db.session.query(model.id).filter(number_column == number).first():
            continue

        row = build(number)
        try:
            with db.session.begin_nested():
                db.session.add(row)
        except IntegrityError:
            if conflict_check is not None:
                conflict_check()
            continue
        return row

    raise DuplicateDocumentNumber(
        f"Could not allocate a unique {model.__tablename__} number after {attempts} attempts",
        details={"attempted_numbers": tried},
    )


def next_document_number(*, business_id: int, document_type: str, prefix: str, pad: int = 6) -> str:
    """
    Atomically allocate the next sequence number for a business/type.

    Runs inside the caller's transaction.
    """
    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.business_id == business_id,
            DocumentSequence.document_type == document_type,
        )
        .values(next_number=DocumentSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(business_id=business_id, document_type=document_type)
            .scalar()
        )
        next_num = current - 1
    else:
        try:
            with db.session.begin_nested():
                db.session.add(DocumentSequence(business_id=business_id, document_type=document_type, next_number=2))
            next_num = 1
        except IntegrityError:
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise
            current = (
                db.session.query(DocumentSequence.next_number)
                .filter_by(business_id=business_id, document_type=document_type)
                .scalar()
            )
            next_num = current - 1

    return f"{prefix}-{next_num:0{pad}d}"


def _staff_name(staff_id: int | None) -> str | None:
    if not staff_id:
        return None
    staff = db.session.get(StaffMember, staff_id)
    return staff.name if staff else None


# =============================================================================
# WAYBILLS
# =============================================================================

def _build_waybill(purchase: Purchase, number: str, generated_by: int | None, overrides: dict) -> Waybill:
    customer = purchase.customer
    return Waybill(
        purchase_id=purchase.id,
        waybill_number=number,
        recipient_name=overrides.get("recipient_name") or customer.full_name,
        recipient_phone=overrides.get("recipient_phone") or customer.phone,
        delivery_address=overrides.get("delivery_address") or customer.address or "N/A",
        delivery_city=overrides.get("delivery_city") or customer.city,
        delivery_region=overrides.get("delivery_region") or customer.region,
        special_instructions=overrides.get("special_instructions"),
        generated_by_user_id=generated_by,
        generated_at=utcnow(),
    )


def _create_waybill(purchase: Purchase, generated_by: int | None, overrides: dict | None) -> Waybill:
    overrides = overrides or {}
    if purchase.delivery_status == DELIVERY_PENDING:
        purchase.delivery_status = DELIVERY_SCHEDULED
    year = utcnow().year

    def _conflict():
        if db.session.query(Waybill.id).filter_by(purchase_id=purchase.id).first():
            raise WaybillAlreadyExists(
                "Waybill already exists for this purchase",
                details={"purchase_id": purchase.id},
            )

    return _insert_with_unique_number(
        lambda number: _build_waybill(purchase, number, generated_by, overrides),
        lambda: waybill_number(year),
        Waybill.waybill_number,
        conflict_check=_conflict,
    )


def ensure_waybill(purchase: Purchase, generated_by: int | None = None, instructions: str | None = None) -> Waybill:
    """
    Completion-cascade entry point: create the purchase's waybill if absent.

    Idempotent; an existing waybill is returned unchanged. Does not commit.
    """
    existing = db.session.query(Waybill).filter_by(purchase_id=purchase.id).first()
    if existing:
        if purchase.delivery_status == DELIVERY_PENDING:
            purchase.delivery_status = DELIVERY_SCHEDULED
        return existing
    return _create_waybill(purchase, generated_by, {"special_instructions": instructions})


def generate_waybill(actor: ActorContext, purchase_id: int, overrides: dict | None = None) -> Waybill:
    """
    Explicit admin request for a waybill.

    Raises:
        WaybillAlreadyExists: the purchase already has one
    """
    def _op():
        require_role(actor, ADMIN_ROLES)
        purchase = lock_for_update(db.session.query(Purchase).filter_by(id=purchase_id)).first()
        if not purchase:
            raise NotFoundError(f"Purchase {purchase_id} not found", details={"purchase_id": purchase_id})
        try:
            require_shop_scope(actor, purchase.shop_id)
        except NotFoundError:
            raise NotFoundError(f"Purchase {purchase_id} not found", details={"purchase_id": purchase_id})

        if db.session.query(Waybill.id).filter_by(purchase_id=purchase.id).first():
            raise WaybillAlreadyExists(
                "Waybill already exists for this purchase",
                details={"purchase_id": purchase.id},
            )

        waybill = _create_waybill(purchase, actor.user_id, overrides)
        append_audit_event(
            business_id=actor.business_id,
            actor_user_id=actor.user_id,
            action="WAYBILL_GENERATED",
            entity_type="purchase",
            entity_id=purchase.id,
            metadata={"waybill_number": waybill.waybill_number},
        )
        db.session.commit()
        return waybill

    return run_with_retry(_op)


# =============================================================================
# PROGRESS INVOICES
# =============================================================================

def create_progress_invoice(payment, purchase: Purchase, previous_balance_cents: int, confirmer: ActorContext | None = None) -> ProgressInvoice:
    """
    Snapshot receipt for a just-confirmed payment. Does not commit.

    Must be called after the purchase has been updated for this payment and
    after any completion cascade, so the waybill fields are current.
    """
    customer = purchase.customer
    shop = purchase.shop
    waybill = db.session.query(Waybill).filter_by(purchase_id=purchase.id).first()
    collector_name = payment.collector.name if payment.collector else None
    confirmed_by_name = _staff_name(confirmer.staff_id) if confirmer else None
    year = utcnow().year

    def _build(number: str) -> ProgressInvoice:
        return ProgressInvoice(
            invoice_number=number,
            payment_id=payment.id,
            purchase_id=purchase.id,
            payment_amount_cents=payment.amount_cents,
            previous_balance_cents=previous_balance_cents,
            new_balance_cents=purchase.outstanding_balance_cents,
            total_purchase_amount_cents=purchase.total_amount_cents,
            total_amount_paid_cents=purchase.amount_paid_cents,
            collector_name=collector_name,
            confirmed_by_name=confirmed_by_name,
            payment_method=payment.payment_method,
            customer_name=customer.full_name,
            customer_phone=customer.phone,
            customer_address=customer.address,
            purchase_number=purchase.purchase_number,
            purchase_type=purchase.purchase_type,
            shop_name=shop.name,
            business_name=shop.business.name,
            is_purchase_completed=purchase.is_completed,
            waybill_generated=waybill is not None,
            waybill_number=waybill.waybill_number if waybill else None,
            notes=payment.notes,
            generated_at=utcnow(),
        )

    def _conflict():
        if db.session.query(ProgressInvoice.id).filter_by(payment_id=payment.id).first():
            raise ValidationError(
                f"Progress invoice already exists for payment {payment.id}",
                details={"payment_id": payment.id},
            )

    return _insert_with_unique_number(
        _build,
        lambda: progress_invoice_number(year),
        ProgressInvoice.invoice_number,
        conflict_check=_conflict,
    )


# =============================================================================
# PURCHASE INVOICES
# =============================================================================

def generate_purchase_invoice(actor: ActorContext, purchase_id: int) -> PurchaseInvoice:
    """
    Full invoice for a purchase: items and active shop payment channels are
    frozen into the document.
    """
    def _op():
        require_role(actor, SELLING_ROLES)
        purchase = lock_for_update(db.session.query(Purchase).filter_by(id=purchase_id)).first()
        if not purchase:
            raise NotFoundError(f"Purchase {purchase_id} not found", details={"purchase_id": purchase_id})
        try:
            shop = require_shop_scope(actor, purchase.shop_id)
        except NotFoundError:
            raise NotFoundError(f"Purchase {purchase_id} not found", details={"purchase_id": purchase_id})

        if db.session.query(PurchaseInvoice.id).filter_by(purchase_id=purchase.id).first():
            raise ValidationError(
                "Purchase invoice already exists",
                details={"purchase_id": purchase.id},
            )

        business = shop.business
        prefix = business.invoice_prefix or current_app.config.get("DEFAULT_INVOICE_PREFIX", "HP")
        number = next_document_number(
            business_id=business.id,
            document_type=DOC_TYPE_PURCHASE_INVOICE,
            prefix=f"INV-{prefix}",
        )

        channels = (
            db.session.query(ShopPaymentChannel)
            .filter_by(shop_id=shop.id, is_active=True)
            .order_by(ShopPaymentChannel.id.asc())
            .all()
        )

        invoice = PurchaseInvoice(
            invoice_number=number,
            purchase_id=purchase.id,
            customer_name=purchase.customer.full_name,
            customer_phone=purchase.customer.phone,
            shop_name=shop.name,
            business_name=business.name,
            purchase_number=purchase.purchase_number,
            purchase_type=purchase.purchase_type,
            subtotal_cents=purchase.subtotal_cents,
            interest_amount_cents=purchase.interest_amount_cents,
            total_amount_cents=purchase.total_amount_cents,
            amount_paid_cents=purchase.amount_paid_cents,
            outstanding_balance_cents=purchase.outstanding_balance_cents,
            due_date=purchase.due_date,
            items_json=[item.to_dict() for item in purchase.items],
            payment_channels_json=[c.to_dict() for c in channels],
            generated_by_user_id=actor.user_id,
            generated_at=utcnow(),
        )
        db.session.add(invoice)
        db.session.flush()

        append_audit_event(
            business_id=actor.business_id,
            actor_user_id=actor.user_id,
            action="PURCHASE_INVOICE_GENERATED",
            entity_type="purchase",
            entity_id=purchase.id,
            metadata={"invoice_number": number},
        )
        db.session.commit()
        return invoice

    return run_with_retry(_op)
