from __future__ import annotations

from ..extensions import db
from hirepay.time_utils import to_utc_z


class Product(db.Model):
    """
    Catalog product, shared by every shop of a business.

    Stock is NOT stored here; each shop carries its own ShopProduct counter.
    Tier prices (cash/layaway/credit) fall back to price_cents when zero.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("business_id", "sku", name="uq_products_business_sku"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=True)
    name = db.Column(db.String(255), nullable=False)

    # Authoritative storage in minor units
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    cash_price_cents = db.Column(db.Integer, nullable=False, default=0)
    layaway_price_cents = db.Column(db.Integer, nullable=False, default=0)
    credit_price_cents = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    business = db.relationship("Business", backref=db.backref("products", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "sku": self.sku,
            "name": self.name,
            "price_cents": self.price_cents,
            "cash_price_cents": self.cash_price_cents,
            "layaway_price_cents": self.layaway_price_cents,
            "credit_price_cents": self.credit_price_cents,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class ShopProduct(db.Model):
    """
    Per-shop stock counter and price override for a catalog product.

    INVARIANT: stock_quantity never goes negative (service check + DB check).
    The same catalog product has independent stock in every shop.
    """
    __tablename__ = "shop_products"
    __table_args__ = (
        db.UniqueConstraint("shop_id", "product_id", name="uq_shop_products_shop_product"),
        db.CheckConstraint("stock_quantity >= 0", name="ck_shop_products_stock_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    low_stock_threshold = db.Column(db.Integer, nullable=False, default=0)

    # Overrides (NULL = use catalog price)
    cash_price_cents = db.Column(db.Integer, nullable=True)
    layaway_price_cents = db.Column(db.Integer, nullable=True)
    credit_price_cents = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    shop = db.relationship("Shop", backref=db.backref("shop_products", lazy=True))
    product = db.relationship("Product", backref=db.backref("shop_products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_low_stock(self) -> bool:
        return self.stock_quantity <= self.low_stock_threshold

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shop_id": self.shop_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "stock_quantity": self.stock_quantity,
            "low_stock_threshold": self.low_stock_threshold,
            "cash_price_cents": self.cash_price_cents,
            "layaway_price_cents": self.layaway_price_cents,
            "credit_price_cents": self.credit_price_cents,
            "is_active": self.is_active,
            "version_id": self.version_id,
        }
