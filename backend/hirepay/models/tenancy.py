from __future__ import annotations

from ..extensions import db
from hirepay.time_utils import to_utc_z


INTEREST_FLAT = "FLAT"
INTEREST_MONTHLY = "MONTHLY"
VALID_INTEREST_TYPES = [INTEREST_FLAT, INTEREST_MONTHLY]


class Business(db.Model):
    """
    Multi-tenant root: every tenant is a Business.

    DESIGN:
    - Shops belong to businesses (business_id FK)
    - One BusinessPolicy per business governs BNPL terms for all its shops
    - Purchase invoice numbers are sequenced per business
    """
    __tablename__ = "businesses"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(32), nullable=True, unique=True, index=True)

    # Used in purchase invoice numbers (INV-<prefix>-000001)
    invoice_prefix = db.Column(db.String(16), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Business id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "invoice_prefix": self.invoice_prefix,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Shop(db.Model):
    """
    Shop within a business.

    MULTI-TENANT: Shops are scoped to businesses via business_id.
    Stock, customers and purchases are all shop-scoped.
    """
    __tablename__ = "shops"
    __table_args__ = (
        db.UniqueConstraint("business_id", "code", name="uq_shops_business_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    code = db.Column(db.String(32), nullable=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    business = db.relationship("Business", backref=db.backref("shops", lazy=True))

    def __repr__(self) -> str:
        return f"<Shop id={self.id} name={self.name!r} business_id={self.business_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "name": self.name,
            "code": self.code,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class ShopPaymentChannel(db.Model):
    """
    Where customers can send money for a shop (mobile money wallet, bank account).

    Snapshotted into purchase invoices at generation time.
    """
    __tablename__ = "shop_payment_channels"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)

    channel_type = db.Column(db.String(32), nullable=False)  # MOBILE_MONEY, BANK, CASH
    provider = db.Column(db.String(120), nullable=True)
    account_name = db.Column(db.String(255), nullable=True)
    account_number = db.Column(db.String(64), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    shop = db.relationship("Shop", backref=db.backref("payment_channels", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shop_id": self.shop_id,
            "channel_type": self.channel_type,
            "provider": self.provider,
            "account_name": self.account_name,
            "account_number": self.account_number,
            "is_active": self.is_active,
        }


class BusinessPolicy(db.Model):
    """
    BNPL terms for a business. Read-only input to pricing.

    interest_rate_bps: basis points (1000 = 10%), range 0..10000.
    FLAT applies the rate once; MONTHLY prorates it by tenor_days / 30.
    """
    __tablename__ = "business_policies"
    __table_args__ = (
        db.UniqueConstraint("business_id", name="uq_business_policies_business"),
        db.CheckConstraint(
            "interest_rate_bps >= 0 AND interest_rate_bps <= 10000",
            name="ck_business_policies_rate_range",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)

    interest_type = db.Column(db.String(16), nullable=False, default=INTEREST_FLAT)
    interest_rate_bps = db.Column(db.Integer, nullable=False, default=0)
    grace_days = db.Column(db.Integer, nullable=False, default=0)
    max_tenor_days = db.Column(db.Integer, nullable=False, default=60)

    # Stored for reporting; not applied by the settlement engine
    late_fee_fixed_cents = db.Column(db.Integer, nullable=True)
    late_fee_rate_bps = db.Column(db.Integer, nullable=True)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    business = db.relationship("Business", backref=db.backref("policy", uselist=False, lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "interest_type": self.interest_type,
            "interest_rate_bps": self.interest_rate_bps,
            "grace_days": self.grace_days,
            "max_tenor_days": self.max_tenor_days,
            "late_fee_fixed_cents": self.late_fee_fixed_cents,
            "late_fee_rate_bps": self.late_fee_rate_bps,
            "updated_at": to_utc_z(self.updated_at),
        }


class StaffMember(db.Model):
    """
    Minimal staff directory entry.

    Only what settlement needs: a display name for document snapshots, a role,
    and the shop a member works at (NULL for business-wide admins).
    """
    __tablename__ = "staff_members"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=True, index=True)

    name = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(32), nullable=False, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "shop_id": self.shop_id,
            "name": self.name,
            "role": self.role,
            "is_active": self.is_active,
        }
