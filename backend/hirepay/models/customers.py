from __future__ import annotations

from ..extensions import db
from hirepay.time_utils import to_utc_z


WALLET_DEPOSIT = "DEPOSIT"
WALLET_PURCHASE = "PURCHASE"
WALLET_ADJUSTMENT_CREDIT = "ADJUSTMENT_CREDIT"
WALLET_ADJUSTMENT_DEBIT = "ADJUSTMENT_DEBIT"

WALLET_CREDIT_TYPES = {WALLET_DEPOSIT, WALLET_ADJUSTMENT_CREDIT}
WALLET_DEBIT_TYPES = {WALLET_PURCHASE, WALLET_ADJUSTMENT_DEBIT}


class Customer(db.Model):
    """
    Customer of a shop.

    wallet_balance_cents is a signed running balance: negative means the
    customer owes the shop. It is only ever changed by wallet_service, which
    writes a WalletTransaction for every change.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_shop_active", "shop_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)

    first_name = db.Column(db.String(128), nullable=False)
    last_name = db.Column(db.String(128), nullable=False)
    phone = db.Column(db.String(32), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(120), nullable=True)
    region = db.Column(db.String(120), nullable=True)

    assigned_collector_id = db.Column(db.Integer, db.ForeignKey("staff_members.id"), nullable=True, index=True)

    wallet_balance_cents = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    shop = db.relationship("Shop", backref=db.backref("customers", lazy=True))
    assigned_collector = db.relationship("StaffMember", foreign_keys=[assigned_collector_id])
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shop_id": self.shop_id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "city": self.city,
            "region": self.region,
            "assigned_collector_id": self.assigned_collector_id,
            "wallet_balance_cents": self.wallet_balance_cents,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }


class WalletTransaction(db.Model):
    """
    Append-only ledger of wallet balance changes.

    TRANSACTION TYPES:
    - DEPOSIT: Confirmed payment credit or wallet top-up (adds)
    - PURCHASE: Debt recognized at sale time, or funds drawn for a WALLET payment (subtracts)
    - ADJUSTMENT_CREDIT / ADJUSTMENT_DEBIT: Manual corrections by a business admin

    INVARIANT: balance_after_cents = balance_before_cents +/- amount_cents.
    IMMUTABLE: Records are never updated or deleted; corrections are new rows.
    """
    __tablename__ = "wallet_transactions"
    __table_args__ = (
        db.Index("ix_wallet_txns_customer_created", "customer_id", "created_at"),
        db.CheckConstraint("amount_cents > 0", name="ck_wallet_txns_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)

    type = db.Column(db.String(32), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    balance_before_cents = db.Column(db.Integer, nullable=False)
    balance_after_cents = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="CONFIRMED")
    description = db.Column(db.String(255), nullable=True)
    reference = db.Column(db.String(128), nullable=True)

    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=True, index=True)
    payment_id = db.Column(db.Integer, db.ForeignKey("payments.id"), nullable=True, index=True)
    created_by_user_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    customer = db.relationship("Customer", backref=db.backref("wallet_transactions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "shop_id": self.shop_id,
            "type": self.type,
            "amount_cents": self.amount_cents,
            "balance_before_cents": self.balance_before_cents,
            "balance_after_cents": self.balance_after_cents,
            "status": self.status,
            "description": self.description,
            "reference": self.reference,
            "purchase_id": self.purchase_id,
            "payment_id": self.payment_id,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
