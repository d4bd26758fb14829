from __future__ import annotations

from ..extensions import db
from hirepay.time_utils import to_utc_z


class AuditEvent(db.Model):
    """
    Append-only audit trail for settlement actions.

    Written inside the same transaction as the change it records, so an
    audit row exists if and only if the change committed.
    """
    __tablename__ = "audit_events"
    __table_args__ = (
        db.Index("ix_audit_events_business_occurred", "business_id", "occurred_at"),
        db.Index("ix_audit_events_entity", "entity_type", "entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    actor_user_id = db.Column(db.Integer, nullable=True, index=True)

    action = db.Column(db.String(64), nullable=False, index=True)  # e.g. PAYMENT_CONFIRMED, WALLET_ADJUSTED
    entity_type = db.Column(db.String(64), nullable=False)  # purchase, payment, customer
    entity_id = db.Column(db.Integer, nullable=False)

    metadata_json = db.Column(db.JSON, nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "actor_user_id": self.actor_user_id,
            "action": self.action,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "metadata": self.metadata_json,
            "occurred_at": to_utc_z(self.occurred_at),
        }
