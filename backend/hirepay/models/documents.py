from __future__ import annotations

from ..extensions import db
from hirepay.time_utils import to_utc_z


class Waybill(db.Model):
    """
    Delivery document. At most one per purchase (unique purchase_id).

    Recipient and address fields are copied from the customer when generated
    and never change afterwards.
    """
    __tablename__ = "waybills"
    __table_args__ = (
        db.UniqueConstraint("purchase_id", name="uq_waybills_purchase"),
        db.UniqueConstraint("waybill_number", name="uq_waybills_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=False, index=True)
    waybill_number = db.Column(db.String(64), nullable=False)

    recipient_name = db.Column(db.String(255), nullable=False)
    recipient_phone = db.Column(db.String(32), nullable=True)
    delivery_address = db.Column(db.String(255), nullable=False)
    delivery_city = db.Column(db.String(120), nullable=True)
    delivery_region = db.Column(db.String(120), nullable=True)
    special_instructions = db.Column(db.Text, nullable=True)

    generated_by_user_id = db.Column(db.Integer, nullable=True)
    generated_at = db.Column(db.DateTime(timezone=True), nullable=False)

    purchase = db.relationship("Purchase", backref=db.backref("waybill", uselist=False, lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_id": self.purchase_id,
            "waybill_number": self.waybill_number,
            "recipient_name": self.recipient_name,
            "recipient_phone": self.recipient_phone,
            "delivery_address": self.delivery_address,
            "delivery_city": self.delivery_city,
            "delivery_region": self.delivery_region,
            "special_instructions": self.special_instructions,
            "generated_by_user_id": self.generated_by_user_id,
            "generated_at": to_utc_z(self.generated_at),
        }


class ProgressInvoice(db.Model):
    """
    Point-in-time receipt for one confirmed payment (unique payment_id).

    Every field is a snapshot: names, balances and waybill state are copied
    at confirmation time and never recomputed.
    """
    __tablename__ = "progress_invoices"
    __table_args__ = (
        db.UniqueConstraint("payment_id", name="uq_progress_invoices_payment"),
        db.UniqueConstraint("invoice_number", name="uq_progress_invoices_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_number = db.Column(db.String(64), nullable=False)
    payment_id = db.Column(db.Integer, db.ForeignKey("payments.id"), nullable=False, index=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=False, index=True)

    payment_amount_cents = db.Column(db.Integer, nullable=False)
    previous_balance_cents = db.Column(db.Integer, nullable=False)
    new_balance_cents = db.Column(db.Integer, nullable=False)
    total_purchase_amount_cents = db.Column(db.Integer, nullable=False)
    total_amount_paid_cents = db.Column(db.Integer, nullable=False)

    collector_name = db.Column(db.String(255), nullable=True)
    confirmed_by_name = db.Column(db.String(255), nullable=True)
    payment_method = db.Column(db.String(32), nullable=False)

    customer_name = db.Column(db.String(255), nullable=False)
    customer_phone = db.Column(db.String(32), nullable=True)
    customer_address = db.Column(db.String(255), nullable=True)

    purchase_number = db.Column(db.String(32), nullable=False)
    purchase_type = db.Column(db.String(16), nullable=False)
    shop_name = db.Column(db.String(120), nullable=False)
    business_name = db.Column(db.String(255), nullable=False)

    is_purchase_completed = db.Column(db.Boolean, nullable=False, default=False)
    waybill_generated = db.Column(db.Boolean, nullable=False, default=False)
    waybill_number = db.Column(db.String(64), nullable=True)

    notes = db.Column(db.Text, nullable=True)
    generated_at = db.Column(db.DateTime(timezone=True), nullable=False)

    payment = db.relationship("Payment", backref=db.backref("progress_invoice", uselist=False, lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "payment_id": self.payment_id,
            "purchase_id": self.purchase_id,
            "payment_amount_cents": self.payment_amount_cents,
            "previous_balance_cents": self.previous_balance_cents,
            "new_balance_cents": self.new_balance_cents,
            "total_purchase_amount_cents": self.total_purchase_amount_cents,
            "total_amount_paid_cents": self.total_amount_paid_cents,
            "collector_name": self.collector_name,
            "confirmed_by_name": self.confirmed_by_name,
            "payment_method": self.payment_method,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "customer_address": self.customer_address,
            "purchase_number": self.purchase_number,
            "purchase_type": self.purchase_type,
            "shop_name": self.shop_name,
            "business_name": self.business_name,
            "is_purchase_completed": self.is_purchase_completed,
            "waybill_generated": self.waybill_generated,
            "waybill_number": self.waybill_number,
            "notes": self.notes,
            "generated_at": to_utc_z(self.generated_at),
        }


class PurchaseInvoice(db.Model):
    """
    Full invoice for a purchase (at most one per purchase).

    items_json and payment_channels_json are frozen copies of the purchase
    lines and the shop's active payment channels.
    """
    __tablename__ = "purchase_invoices"
    __table_args__ = (
        db.UniqueConstraint("purchase_id", name="uq_purchase_invoices_purchase"),
        db.UniqueConstraint("invoice_number", name="uq_purchase_invoices_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_number = db.Column(db.String(64), nullable=False)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=False, index=True)

    customer_name = db.Column(db.String(255), nullable=False)
    customer_phone = db.Column(db.String(32), nullable=True)
    shop_name = db.Column(db.String(120), nullable=False)
    business_name = db.Column(db.String(255), nullable=False)

    purchase_number = db.Column(db.String(32), nullable=False)
    purchase_type = db.Column(db.String(16), nullable=False)
    subtotal_cents = db.Column(db.Integer, nullable=False)
    interest_amount_cents = db.Column(db.Integer, nullable=False)
    total_amount_cents = db.Column(db.Integer, nullable=False)
    amount_paid_cents = db.Column(db.Integer, nullable=False)
    outstanding_balance_cents = db.Column(db.Integer, nullable=False)
    due_date = db.Column(db.DateTime(timezone=True), nullable=True)

    items_json = db.Column(db.JSON, nullable=False)
    payment_channels_json = db.Column(db.JSON, nullable=False)

    generated_by_user_id = db.Column(db.Integer, nullable=True)
    generated_at = db.Column(db.DateTime(timezone=True), nullable=False)

    purchase = db.relationship("Purchase", backref=db.backref("purchase_invoice", uselist=False, lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "purchase_id": self.purchase_id,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "shop_name": self.shop_name,
            "business_name": self.business_name,
            "purchase_number": self.purchase_number,
            "purchase_type": self.purchase_type,
            "subtotal_cents": self.subtotal_cents,
            "interest_amount_cents": self.interest_amount_cents,
            "total_amount_cents": self.total_amount_cents,
            "amount_paid_cents": self.amount_paid_cents,
            "outstanding_balance_cents": self.outstanding_balance_cents,
            "due_date": to_utc_z(self.due_date),
            "items": self.items_json,
            "payment_channels": self.payment_channels_json,
            "generated_by_user_id": self.generated_by_user_id,
            "generated_at": to_utc_z(self.generated_at),
        }


class DocumentSequence(db.Model):
    """
    Atomic per-business document sequences.

    WHY: Prevent race conditions when numbering purchase invoices.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("business_id", "document_type", name="uq_doc_sequences_business_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    document_type = db.Column(db.String(32), nullable=False, index=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "document_type": self.document_type,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
