# Overview: Service-layer operations for the customer wallet ledger.

from __future__ import annotations

from ..extensions import db
from ..errors import InsufficientWalletBalance, NotFoundError, ValidationError
from ..models import Customer, WalletTransaction
from ..models.customers import (
    WALLET_DEPOSIT,
    WALLET_PURCHASE,
    WALLET_ADJUSTMENT_CREDIT,
    WALLET_ADJUSTMENT_DEBIT,
    WALLET_CREDIT_TYPES,
    WALLET_DEBIT_TYPES,
)
from ..models.purchases import PURCHASE_CASH
from .audit_service import append_audit_event
from .concurrency import lock_for_update, run_with_retry
from .scope_service import (
    ActorContext,
    ROLE_BUSINESS_ADMIN,
    SELLING_ROLES,
    get_customer_in_scope,
    require_role,
    require_shop_scope,
)
"""
Wallet ledger invariants (authoritative)

- Customer.wallet_balance_cents is signed; negative means the customer owes.
- Every balance change writes exactly one WalletTransaction whose
  balance_after_cents equals the customer's balance right after the change.
- amount_cents is always positive; DEPOSIT / ADJUSTMENT_CREDIT add,
  PURCHASE / ADJUSTMENT_DEBIT subtract.
- Transactions are append-only; corrections are new ADJUSTMENT rows.
- The customer row is locked before the balance is read.

Sale / payment flow:
- Non-CASH sale: PURCHASE debit for the outstanding balance at sale time.
- Confirmed payment: DEPOSIT credit for the confirmed amount.
- WALLET payment: PURCHASE debit (balance must cover it), then the automatic
  confirmation credits it back, so the pair nets to zero on the wallet while
  the purchase debt shrinks.
"""


def _lock_customer(customer_id: int) -> Customer:
    customer = lock_for_update(db.session.query(Customer).filter_by(id=customer_id)).first()
    if not customer:
        raise NotFoundError(f"Customer {customer_id} not found", details={"customer_id": customer_id})
    return customer


def post_wallet_transaction(
    *,
    customer: Customer,
    txn_type: str,
    amount_cents: int,
    description: str | None = None,
    reference: str | None = None,
    purchase_id: int | None = None,
    payment_id: int | None = None,
    created_by_user_id: int | None = None,
) -> WalletTransaction:
    """
    Apply one balance change to an already-locked customer. Does not commit.
    """
    if amount_cents is None or amount_cents <= 0:
        raise ValidationError("Wallet amount must be positive")

    if txn_type in WALLET_CREDIT_TYPES:
        delta = amount_cents
    elif txn_type in WALLET_DEBIT_TYPES:
        delta = -amount_cents
    else:
        raise ValidationError(f"Invalid wallet transaction type: {txn_type}")

    before = customer.wallet_balance_cents or 0
    after = before + delta
    customer.wallet_balance_cents = after

    txn = WalletTransaction(
        customer_id=customer.id,
        shop_id=customer.shop_id,
        type=txn_type,
        amount_cents=amount_cents,
        balance_before_cents=before,
        balance_after_cents=after,
        status="CONFIRMED",
        description=description,
        reference=reference,
        purchase_id=purchase_id,
        payment_id=payment_id,
        created_by_user_id=created_by_user_id,
    )
    db.session.add(txn)
    db.session.flush()
    return txn


# =============================================================================
# SETTLEMENT HOOKS (run inside the caller's transaction)
# =============================================================================

def debit_for_purchase(purchase, actor_user_id: int | None = None) -> WalletTransaction | None:
    """Recognize BNPL debt at sale time. No-op for CASH or fully paid purchases."""
    if purchase.purchase_type == PURCHASE_CASH or purchase.outstanding_balance_cents <= 0:
        return None
    customer = _lock_customer(purchase.customer_id)
    return post_wallet_transaction(
        customer=customer,
        txn_type=WALLET_PURCHASE,
        amount_cents=purchase.outstanding_balance_cents,
        description=f"Purchase {purchase.purchase_number}",
        purchase_id=purchase.id,
        created_by_user_id=actor_user_id,
    )


def credit_for_payment(payment, actor_user_id: int | None = None) -> WalletTransaction:
    """Credit the wallet by a confirmed payment's amount."""
    purchase = payment.purchase
    customer = _lock_customer(purchase.customer_id)
    return post_wallet_transaction(
        customer=customer,
        txn_type=WALLET_DEPOSIT,
        amount_cents=payment.amount_cents,
        description=f"Payment for {purchase.purchase_number}",
        reference=payment.reference,
        purchase_id=purchase.id,
        payment_id=payment.id,
        created_by_user_id=actor_user_id,
    )


def debit_for_wallet_payment(
    customer_id: int,
    amount_cents: int,
    *,
    purchase_id: int | None = None,
    payment_id: int | None = None,
    actor_user_id: int | None = None,
) -> WalletTransaction:
    """Draw funds for a WALLET-method payment. The balance must cover the amount."""
    customer = _lock_customer(customer_id)
    if (customer.wallet_balance_cents or 0) < amount_cents:
        raise InsufficientWalletBalance(
            f"Insufficient wallet balance. Available: {customer.wallet_balance_cents}, required: {amount_cents}",
            details={
                "customer_id": customer_id,
                "wallet_balance_cents": customer.wallet_balance_cents,
                "required_cents": amount_cents,
            },
        )
    return post_wallet_transaction(
        customer=customer,
        txn_type=WALLET_PURCHASE,
        amount_cents=amount_cents,
        description="Wallet payment",
        purchase_id=purchase_id,
        payment_id=payment_id,
        created_by_user_id=actor_user_id,
    )


def adjust_for_debt_change(purchase, delta_cents: int, actor_user_id: int | None = None) -> WalletTransaction | None:
    """
    Offset an edit that changed the purchase debt.

    Positive delta (more debt) is a PURCHASE debit; negative delta is an
    ADJUSTMENT_CREDIT.
    """
    if delta_cents == 0:
        return None
    customer = _lock_customer(purchase.customer_id)
    if delta_cents > 0:
        return post_wallet_transaction(
            customer=customer,
            txn_type=WALLET_PURCHASE,
            amount_cents=delta_cents,
            description=f"Items added to {purchase.purchase_number}",
            purchase_id=purchase.id,
            created_by_user_id=actor_user_id,
        )
    return post_wallet_transaction(
        customer=customer,
        txn_type=WALLET_ADJUSTMENT_CREDIT,
        amount_cents=-delta_cents,
        description=f"Items removed from {purchase.purchase_number}",
        purchase_id=purchase.id,
        created_by_user_id=actor_user_id,
    )


# =============================================================================
# STANDALONE OPERATIONS
# =============================================================================

def deposit_funds(
    actor: ActorContext,
    customer_id: int,
    amount_cents: int,
    *,
    reference: str | None = None,
    description: str | None = None,
) -> WalletTransaction:
    """Top up a customer's wallet."""
    def _op():
        require_role(actor, SELLING_ROLES)
        if not isinstance(amount_cents, int) or isinstance(amount_cents, bool) or amount_cents <= 0:
            raise ValidationError("Deposit amount must be a positive integer")

        customer = _lock_customer(customer_id)
        try:
            require_shop_scope(actor, customer.shop_id)
        except NotFoundError:
            raise NotFoundError(f"Customer {customer_id} not found", details={"customer_id": customer_id})

        txn = post_wallet_transaction(
            customer=customer,
            txn_type=WALLET_DEPOSIT,
            amount_cents=amount_cents,
            description=description or "Wallet deposit",
            reference=reference,
            created_by_user_id=actor.user_id,
        )
        append_audit_event(
            business_id=actor.business_id,
            actor_user_id=actor.user_id,
            action="WALLET_DEPOSIT",
            entity_type="customer",
            entity_id=customer.id,
            metadata={"amount_cents": amount_cents, "wallet_transaction_id": txn.id},
        )
        db.session.commit()
        return txn

    return run_with_retry(_op)


def adjust_wallet(
    actor: ActorContext,
    customer_id: int,
    amount_cents: int,
    is_addition: bool,
    reason: str,
) -> WalletTransaction:
    """
    Manual correction by a business admin.

    Written as a new ADJUSTMENT_CREDIT / ADJUSTMENT_DEBIT row; existing
    transactions are never edited.
    """
    def _op():
        require_role(actor, {ROLE_BUSINESS_ADMIN})
        if not isinstance(amount_cents, int) or isinstance(amount_cents, bool) or amount_cents <= 0:
            raise ValidationError("Adjustment amount must be a positive integer")
        if not reason or not str(reason).strip():
            raise ValidationError("A reason is required for wallet adjustments")

        customer = _lock_customer(customer_id)
        try:
            require_shop_scope(actor, customer.shop_id)
        except NotFoundError:
            raise NotFoundError(f"Customer {customer_id} not found", details={"customer_id": customer_id})

        txn = post_wallet_transaction(
            customer=customer,
            txn_type=WALLET_ADJUSTMENT_CREDIT if is_addition else WALLET_ADJUSTMENT_DEBIT,
            amount_cents=amount_cents,
            description=str(reason).strip(),
            created_by_user_id=actor.user_id,
        )
        append_audit_event(
            business_id=actor.business_id,
            actor_user_id=actor.user_id,
            action="WALLET_ADJUSTED",
            entity_type="customer",
            entity_id=customer.id,
            metadata={
                "amount_cents": amount_cents,
                "is_addition": bool(is_addition),
                "reason": str(reason).strip(),
                "balance_before_cents": txn.balance_before_cents,
                "balance_after_cents": txn.balance_after_cents,
            },
        )
        db.session.commit()
        return txn

    return run_with_retry(_op)


def get_wallet_transactions(actor: ActorContext, customer_id: int, limit: int = 200) -> list[WalletTransaction]:
    """Wallet ledger for a customer, newest first."""
    get_customer_in_scope(actor, customer_id)
    return (
        db.session.query(WalletTransaction)
        .filter(WalletTransaction.customer_id == customer_id)
        .order_by(WalletTransaction.created_at.desc(), WalletTransaction.id.desc())
        .limit(limit)
        .all()
    )
