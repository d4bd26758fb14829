# Overview: Payment settlement workflow; record, confirm and reject payments.

"""
Payment settlement

WHY: Collected money only counts once an admin confirms it. Confirmation is
the single place where a payment fans out into purchase totals, the wallet,
stock, waybills and receipts, so all of that happens in one transaction.

PAYMENT LIFECYCLE:
- recorded: PENDING, awaiting review (WALLET payments skip this)
- confirmed: COMPLETED; counted toward the purchase
- rejected: MISSED; never counted, nothing else changes

RULES:
- Exactly one terminal transition per payment; the second attempt fails.
- The amount may never exceed the purchase's outstanding balance, checked at
  record time and again under lock at confirmation.
- Debt collectors only record against customers assigned to them.
- Receipts are sent after commit; a failed send never undoes settlement.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..extensions import db
from ..errors import (
    AlreadyConfirmed,
    AlreadyRejected,
    NotFoundError,
    OverpaymentRejected,
    PermissionDenied,
    ValidationError,
)
from ..models import Customer, Payment, ProgressInvoice, Purchase, StaffMember
from ..models.purchases import (
    VALID_PAYMENT_METHODS,
    METHOD_WALLET,
    PAYMENT_PENDING,
    PAYMENT_COMPLETED,
    PAYMENT_MISSED,
)
from ..validation import coerce_amount_cents
from hirepay.time_utils import utcnow, parse_iso_datetime
from . import document_service, notification_service, purchase_service, wallet_service
from .audit_service import append_audit_event
from .concurrency import lock_for_update, run_with_retry
from .pricing_service import format_amount
from .scope_service import (
    ActorContext,
    ADMIN_ROLES,
    COLLECTING_ROLES,
    ROLE_DEBT_COLLECTOR,
    require_role,
    require_shop_scope,
    scoped_shop_ids,
)


@dataclass
class ConfirmationResult:
    payment: Payment
    purchase: Purchase
    progress_invoice: ProgressInvoice
    purchase_completed: bool


def _lock_purchase(purchase_id: int) -> Purchase:
    purchase = lock_for_update(db.session.query(Purchase).filter_by(id=purchase_id)).first()
    if not purchase:
        raise NotFoundError(f"Purchase {purchase_id} not found", details={"purchase_id": purchase_id})
    return purchase


def _lock_payment_in_scope(actor: ActorContext, payment_id: int) -> Payment:
    payment = lock_for_update(db.session.query(Payment).filter_by(id=payment_id)).first()
    if not payment:
        raise NotFoundError(f"Payment {payment_id} not found", details={"payment_id": payment_id})
    try:
        require_shop_scope(actor, payment.purchase.shop_id)
    except NotFoundError:
        raise NotFoundError(f"Payment {payment_id} not found", details={"payment_id": payment_id})
    return payment


def _check_outstanding(purchase: Purchase, amount_cents: int) -> None:
    if purchase.is_completed or purchase.outstanding_balance_cents <= 0:
        raise ValidationError("This purchase is already fully paid", details={"purchase_id": purchase.id})
    if amount_cents > purchase.outstanding_balance_cents:
        raise OverpaymentRejected(
            f"Amount cannot exceed outstanding balance of {format_amount(purchase.outstanding_balance_cents)}",
            details={
                "purchase_id": purchase.id,
                "amount_cents": amount_cents,
                "outstanding_balance_cents": purchase.outstanding_balance_cents,
            },
        )


def _resolve_collector(actor: ActorContext, customer: Customer, collector_id: int | None) -> int | None:
    if actor.role == ROLE_DEBT_COLLECTOR:
        if not actor.staff_id or customer.assigned_collector_id != actor.staff_id:
            raise PermissionDenied(
                "You can only record payments for customers assigned to you",
                details={"customer_id": customer.id},
            )
        return actor.staff_id

    if collector_id is None:
        return None
    staff = db.session.get(StaffMember, collector_id)
    if not staff or staff.business_id != actor.business_id:
        raise NotFoundError(f"Collector {collector_id} not found", details={"collector_id": collector_id})
    return staff.id


def _confirm_locked(actor: ActorContext, payment: Payment, purchase: Purchase) -> ConfirmationResult:
    """Apply a payment to its locked purchase. Does not commit."""
    _check_outstanding(purchase, payment.amount_cents)
    previous_balance = purchase.outstanding_balance_cents

    payment.is_confirmed = True
    payment.status = PAYMENT_COMPLETED
    payment.confirmed_at = utcnow()
    payment.confirmed_by_user_id = actor.user_id

    completed = purchase_service.apply_confirmed_amount(purchase, payment.amount_cents)
    db.session.flush()

    wallet_service.credit_for_payment(payment, actor_user_id=actor.user_id)

    if completed:
        purchase_service.run_completion_cascade(purchase, actor_user_id=actor.user_id)

    invoice = document_service.create_progress_invoice(payment, purchase, previous_balance, confirmer=actor)

    append_audit_event(
        business_id=actor.business_id,
        actor_user_id=actor.user_id,
        action="PAYMENT_CONFIRMED",
        entity_type="payment",
        entity_id=payment.id,
        metadata={
            "purchase_id": purchase.id,
            "amount_cents": payment.amount_cents,
            "previous_balance_cents": previous_balance,
            "new_balance_cents": purchase.outstanding_balance_cents,
            "purchase_completed": completed,
            "invoice_number": invoice.invoice_number,
        },
    )
    return ConfirmationResult(payment=payment, purchase=purchase, progress_invoice=invoice, purchase_completed=completed)


# =============================================================================
# RECORD
# =============================================================================

def record_payment(
    actor: ActorContext,
    purchase_id: int,
    amount_cents,
    payment_method: str,
    *,
    auto_confirm: bool = False,
    collector_id: int | None = None,
    reference: str | None = None,
    notes: str | None = None,
    paid_at: str | None = None,
) -> Payment:
    """
    Record money received against a purchase.

    WALLET payments draw on the customer's wallet and always confirm
    immediately. Other methods stay PENDING unless auto_confirm is requested
    by an admin.

    Raises:
        OverpaymentRejected: amount above the outstanding balance
        InsufficientWalletBalance: WALLET payment the wallet cannot cover
        PermissionDenied: collector not assigned to the customer, or a
            non-admin asking for auto_confirm
    """
    if payment_method not in VALID_PAYMENT_METHODS:
        raise ValidationError(
            f"Invalid payment method: {payment_method}. Must be one of {VALID_PAYMENT_METHODS}"
        )
    amount = coerce_amount_cents(amount_cents)
    paid_at_dt = None
    if paid_at is not None:
        if not isinstance(paid_at, str):
            raise ValidationError("paid_at must be an ISO-8601 datetime")
        try:
            paid_at_dt = parse_iso_datetime(paid_at)
        except ValueError:
            raise ValidationError("paid_at must be an ISO-8601 datetime", details={"paid_at": paid_at})
    confirm_now = payment_method == METHOD_WALLET or bool(auto_confirm)

    def _op():
        require_role(actor, COLLECTING_ROLES)
        if auto_confirm and payment_method != METHOD_WALLET and actor.role not in ADMIN_ROLES:
            raise PermissionDenied(
                "Only admins can confirm payments",
                details={"role": actor.role},
            )

        purchase = _lock_purchase(purchase_id)
        try:
            require_shop_scope(actor, purchase.shop_id)
        except NotFoundError:
            raise NotFoundError(f"Purchase {purchase_id} not found", details={"purchase_id": purchase_id})

        _check_outstanding(purchase, amount)
        collector = _resolve_collector(actor, purchase.customer, collector_id)

        payment = Payment(
            purchase_id=purchase.id,
            amount_cents=amount,
            payment_method=payment_method,
            status=PAYMENT_PENDING,
            is_confirmed=False,
            collector_id=collector,
            recorded_by_user_id=actor.user_id,
            reference=reference,
            notes=notes,
            paid_at=paid_at_dt or utcnow(),
        )
        db.session.add(payment)
        db.session.flush()

        if payment_method == METHOD_WALLET:
            wallet_service.debit_for_wallet_payment(
                purchase.customer_id,
                amount,
                purchase_id=purchase.id,
                payment_id=payment.id,
                actor_user_id=actor.user_id,
            )

        append_audit_event(
            business_id=actor.business_id,
            actor_user_id=actor.user_id,
            action="PAYMENT_RECORDED",
            entity_type="payment",
            entity_id=payment.id,
            metadata={
                "purchase_id": purchase.id,
                "amount_cents": amount,
                "payment_method": payment_method,
                "collector_id": collector,
            },
        )

        if confirm_now:
            _confirm_locked(actor, payment, purchase)

        db.session.commit()
        return payment

    payment = run_with_retry(_op)
    if payment.is_confirmed:
        notification_service.send_payment_receipt(payment.id)
    return payment


# =============================================================================
# CONFIRM / REJECT
# =============================================================================

def confirm_payment(actor: ActorContext, payment_id: int) -> ConfirmationResult:
    """
    Confirm a pending payment and apply every consequence atomically.

    Raises:
        AlreadyConfirmed / AlreadyRejected: payment already reached a terminal state
        OverpaymentRejected: outstanding balance shrank below the amount since recording
    """
    def _op():
        require_role(actor, ADMIN_ROLES)
        payment = _lock_payment_in_scope(actor, payment_id)

        if payment.is_confirmed:
            raise AlreadyConfirmed("Payment is already confirmed", details={"payment_id": payment.id})
        if payment.is_rejected:
            raise AlreadyRejected("Cannot confirm a rejected payment", details={"payment_id": payment.id})

        purchase = _lock_purchase(payment.purchase_id)
        result = _confirm_locked(actor, payment, purchase)

        db.session.commit()
        return result

    result = run_with_retry(_op)
    notification_service.send_payment_receipt(result.payment.id)
    return result


def reject_payment(actor: ActorContext, payment_id: int, reason: str) -> Payment:
    """Reject a pending payment. Purchase, wallet and stock are untouched."""
    reason = (reason or "").strip() if isinstance(reason, str) else ""
    if not reason:
        raise ValidationError("A rejection reason is required")

    def _op():
        require_role(actor, ADMIN_ROLES)
        payment = _lock_payment_in_scope(actor, payment_id)

        if payment.is_confirmed:
            raise AlreadyConfirmed("Cannot reject a confirmed payment", details={"payment_id": payment.id})
        if payment.is_rejected:
            raise AlreadyRejected("Payment is already rejected", details={"payment_id": payment.id})

        payment.status = PAYMENT_MISSED
        payment.rejected_at = utcnow()
        payment.rejected_by_user_id = actor.user_id
        payment.rejection_reason = reason

        append_audit_event(
            business_id=actor.business_id,
            actor_user_id=actor.user_id,
            action="PAYMENT_REJECTED",
            entity_type="payment",
            entity_id=payment.id,
            metadata={"purchase_id": payment.purchase_id, "reason": reason},
        )

        db.session.commit()
        return payment

    payment = run_with_retry(_op)
    current_app.logger.info("Payment %s rejected: %s", payment.id, reason)
    return payment


# =============================================================================
# QUERIES
# =============================================================================

def get_pending_payments(actor: ActorContext, shop_id: int | None = None) -> list[Payment]:
    """Unconfirmed, unrejected payments within the actor's scope, oldest first."""
    if shop_id is not None:
        require_shop_scope(actor, shop_id)
        shop_ids = [shop_id]
    else:
        shop_ids = scoped_shop_ids(actor)

    q = (
        db.session.query(Payment)
        .join(Purchase, Purchase.id == Payment.purchase_id)
        .filter(
            Purchase.shop_id.in_(shop_ids),
            Payment.is_confirmed.is_(False),
            Payment.rejected_at.is_(None),
        )
    )
    if actor.role == ROLE_DEBT_COLLECTOR:
        q = q.filter(Payment.collector_id == actor.staff_id)
    return q.order_by(Payment.created_at.asc(), Payment.id.asc()).all()
