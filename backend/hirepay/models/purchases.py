from __future__ import annotations

from ..extensions import db
from hirepay.time_utils import to_utc_z


PURCHASE_CASH = "CASH"
PURCHASE_LAYAWAY = "LAYAWAY"
PURCHASE_CREDIT = "CREDIT"
VALID_PURCHASE_TYPES = [PURCHASE_CASH, PURCHASE_LAYAWAY, PURCHASE_CREDIT]

STATUS_PENDING = "PENDING"
STATUS_ACTIVE = "ACTIVE"
STATUS_COMPLETED = "COMPLETED"
STATUS_OVERDUE = "OVERDUE"
STATUS_DEFAULTED = "DEFAULTED"

DELIVERY_PENDING = "PENDING"
DELIVERY_SCHEDULED = "SCHEDULED"
DELIVERY_DELIVERED = "DELIVERED"

METHOD_CASH = "CASH"
METHOD_MOBILE_MONEY = "MOBILE_MONEY"
METHOD_BANK_TRANSFER = "BANK_TRANSFER"
METHOD_CARD = "CARD"
METHOD_WALLET = "WALLET"
VALID_PAYMENT_METHODS = [METHOD_CASH, METHOD_MOBILE_MONEY, METHOD_BANK_TRANSFER, METHOD_CARD, METHOD_WALLET]

PAYMENT_PENDING = "PENDING"
PAYMENT_COMPLETED = "COMPLETED"
PAYMENT_MISSED = "MISSED"


class Purchase(db.Model):
    """
    A sale to a customer, paid at once (CASH) or over time (LAYAWAY / CREDIT).

    LIFECYCLE:
    - PENDING: nothing paid yet
    - ACTIVE: partially paid
    - COMPLETED: outstanding_balance == 0 (terminal, immutable)
    - OVERDUE / DEFAULTED: set by the overdue sweep, cleared only by completion

    INVARIANTS:
    - total_amount_cents = subtotal_cents + interest_amount_cents
    - amount_paid_cents + outstanding_balance_cents = total_amount_cents
    - status == COMPLETED iff outstanding_balance_cents == 0

    Interest terms are copied from the business policy at creation so later
    policy changes never reprice an existing purchase.
    """
    __tablename__ = "purchases"
    __table_args__ = (
        db.UniqueConstraint("customer_id", "purchase_number", name="uq_purchases_customer_number"),
        db.CheckConstraint("outstanding_balance_cents >= 0", name="ck_purchases_outstanding_non_negative"),
        db.Index("ix_purchases_shop_status", "shop_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_number = db.Column(db.String(32), nullable=False, index=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)

    purchase_type = db.Column(db.String(16), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=STATUS_PENDING, index=True)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    interest_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    down_payment_cents = db.Column(db.Integer, nullable=False, default=0)
    amount_paid_cents = db.Column(db.Integer, nullable=False, default=0)
    outstanding_balance_cents = db.Column(db.Integer, nullable=False, default=0)

    installments = db.Column(db.Integer, nullable=False, default=1)
    tenor_days = db.Column(db.Integer, nullable=True)
    start_date = db.Column(db.DateTime(timezone=True), nullable=False)
    due_date = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    interest_type = db.Column(db.String(16), nullable=True)
    interest_rate_bps = db.Column(db.Integer, nullable=False, default=0)

    delivery_status = db.Column(db.String(16), nullable=False, default=DELIVERY_PENDING)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("purchases", lazy=True))
    shop = db.relationship("Shop", backref=db.backref("purchases", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_completed(self) -> bool:
        return self.status == STATUS_COMPLETED

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "purchase_number": self.purchase_number,
            "customer_id": self.customer_id,
            "shop_id": self.shop_id,
            "purchase_type": self.purchase_type,
            "status": self.status,
            "subtotal_cents": self.subtotal_cents,
            "interest_amount_cents": self.interest_amount_cents,
            "total_amount_cents": self.total_amount_cents,
            "down_payment_cents": self.down_payment_cents,
            "amount_paid_cents": self.amount_paid_cents,
            "outstanding_balance_cents": self.outstanding_balance_cents,
            "installments": self.installments,
            "tenor_days": self.tenor_days,
            "start_date": to_utc_z(self.start_date),
            "due_date": to_utc_z(self.due_date),
            "interest_type": self.interest_type,
            "interest_rate_bps": self.interest_rate_bps,
            "delivery_status": self.delivery_status,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at),
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class PurchaseItem(db.Model):
    """Line item. product_name and unit_price_cents are snapshots taken at sale time."""
    __tablename__ = "purchase_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_purchase_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    product_name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_price_cents = db.Column(db.Integer, nullable=False)

    purchase = db.relationship(
        "Purchase",
        backref=db.backref("items", lazy=True, cascade="all, delete-orphan", order_by="PurchaseItem.id"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_id": self.purchase_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_price_cents": self.total_price_cents,
        }


class Payment(db.Model):
    """
    Money received against a purchase.

    LIFECYCLE:
    - PENDING (is_confirmed False, rejected_at NULL): awaiting admin review
    - COMPLETED (is_confirmed True): counted toward the purchase
    - MISSED (rejected_at set): rejected, never counted

    Exactly one terminal transition is allowed. Confirmer, rejecter and
    recorder identities live in their own columns.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_payments_amount_positive"),
        db.Index("ix_payments_purchase_status", "purchase_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(32), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=PAYMENT_PENDING, index=True)

    is_confirmed = db.Column(db.Boolean, nullable=False, default=False)
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    confirmed_by_user_id = db.Column(db.Integer, nullable=True)

    rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejected_by_user_id = db.Column(db.Integer, nullable=True)
    rejection_reason = db.Column(db.String(255), nullable=True)

    collector_id = db.Column(db.Integer, db.ForeignKey("staff_members.id"), nullable=True, index=True)
    recorded_by_user_id = db.Column(db.Integer, nullable=True)

    reference = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    paid_at = db.Column(db.DateTime(timezone=True), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    version_id = db.Column(db.Integer, nullable=False, default=1)

    purchase = db.relationship("Purchase", backref=db.backref("payments", lazy=True, order_by="Payment.id"))
    collector = db.relationship("StaffMember", foreign_keys=[collector_id])
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_rejected(self) -> bool:
        return self.rejected_at is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_id": self.purchase_id,
            "amount_cents": self.amount_cents,
            "payment_method": self.payment_method,
            "status": self.status,
            "is_confirmed": self.is_confirmed,
            "confirmed_at": to_utc_z(self.confirmed_at),
            "confirmed_by_user_id": self.confirmed_by_user_id,
            "rejected_at": to_utc_z(self.rejected_at),
            "rejected_by_user_id": self.rejected_by_user_id,
            "rejection_reason": self.rejection_reason,
            "collector_id": self.collector_id,
            "recorded_by_user_id": self.recorded_by_user_id,
            "reference": self.reference,
            "notes": self.notes,
            "paid_at": to_utc_z(self.paid_at),
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
