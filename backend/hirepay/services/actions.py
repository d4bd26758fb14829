# Overview: Workflow boundary; wraps settlement operations into uniform ActionResults.

"""
Exposed settlement actions.

Every function here returns an ActionResult and never lets an expected
SettlementError escape. Unexpected exceptions are rolled back, logged with the
traceback and reported as "Failed to <operation>".

USAGE:
    result = actions.confirm_payment(actor, payment_id)
    if not result.success:
        return jsonify({"error": result.error, "code": result.code}), result.http_status
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable

from flask import current_app

from ..extensions import db
from ..errors import SettlementError
from ..validation import coerce_int, coerce_amount_cents
from hirepay.time_utils import to_utc_z
from . import document_service, purchase_service, settlement_service, wallet_service
from .scope_service import ActorContext


@dataclass
class ActionResult:
    success: bool
    error: str | None = None
    code: str | None = None
    details: dict = field(default_factory=dict)
    data: dict = field(default_factory=dict)
    http_status: int = 200

    @classmethod
    def ok(cls, data: dict | None = None, http_status: int = 200) -> "ActionResult":
        return cls(success=True, data=data or {}, http_status=http_status)

    @classmethod
    def from_error(cls, exc: SettlementError) -> "ActionResult":
        return cls(
            success=False,
            error=exc.message,
            code=exc.code,
            details=exc.details,
            http_status=exc.http_status,
        )

    def to_dict(self) -> dict:
        if self.success:
            return {"success": True, "data": self.data}
        return {"success": False, "error": self.error, "code": self.code, "details": self.details}


def _run(operation: str, fn: Callable[[], dict], http_status: int = 200) -> ActionResult:
    try:
        return ActionResult.ok(fn(), http_status=http_status)
    except SettlementError as e:
        db.session.rollback()
        return ActionResult.from_error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to %s", operation)
        return ActionResult(
            success=False,
            error=f"Failed to {operation}",
            code="internal_error",
            http_status=500,
        )


def create_sale(actor: ActorContext, payload: dict) -> ActionResult:
    def _fn():
        purchase = purchase_service.create_sale(actor, payload)
        return {
            "purchase_id": purchase.id,
            "purchase_number": purchase.purchase_number,
            "status": purchase.status,
            "totals": {
                "subtotal_cents": purchase.subtotal_cents,
                "interest_amount_cents": purchase.interest_amount_cents,
                "total_amount_cents": purchase.total_amount_cents,
                "amount_paid_cents": purchase.amount_paid_cents,
                "outstanding_balance_cents": purchase.outstanding_balance_cents,
            },
            "due_date": to_utc_z(purchase.due_date),
        }
    return _run("create sale", _fn, http_status=201)


def record_payment(actor: ActorContext, payload: dict) -> ActionResult:
    def _fn():
        data = payload or {}
        payment = settlement_service.record_payment(
            actor,
            coerce_int(data.get("purchase_id"), "purchase_id", minimum=1),
            coerce_amount_cents(data.get("amount_cents")),
            data.get("payment_method"),
            auto_confirm=bool(data.get("auto_confirm", False)),
            collector_id=coerce_int(data["collector_id"], "collector_id", minimum=1) if data.get("collector_id") is not None else None,
            reference=data.get("reference"),
            notes=data.get("notes"),
            paid_at=data.get("paid_at"),
        )
        return {
            "payment_id": payment.id,
            "awaiting_confirmation": not payment.is_confirmed,
            "payment": payment.to_dict(),
        }
    return _run("record payment", _fn, http_status=201)


def confirm_payment(actor: ActorContext, payment_id: int) -> ActionResult:
    def _fn():
        result = settlement_service.confirm_payment(actor, payment_id)
        return {
            "purchase_completed": result.purchase_completed,
            "payment": result.payment.to_dict(),
            "purchase": result.purchase.to_dict(),
            "progress_invoice": result.progress_invoice.to_dict(),
        }
    return _run("confirm payment", _fn)


def reject_payment(actor: ActorContext, payment_id: int, reason: str) -> ActionResult:
    def _fn():
        settlement_service.reject_payment(actor, payment_id, reason)
        return {}
    return _run("reject payment", _fn)


def edit_purchase_items(actor: ActorContext, purchase_id: int, items: Any) -> ActionResult:
    def _fn():
        purchase = purchase_service.edit_purchase_items(actor, purchase_id, items)
        return {
            "new_totals": {
                "subtotal_cents": purchase.subtotal_cents,
                "interest_amount_cents": purchase.interest_amount_cents,
                "total_amount_cents": purchase.total_amount_cents,
                "amount_paid_cents": purchase.amount_paid_cents,
                "outstanding_balance_cents": purchase.outstanding_balance_cents,
            },
            "status": purchase.status,
        }
    return _run("edit purchase items", _fn)


def generate_waybill(actor: ActorContext, purchase_id: int, overrides: dict | None = None) -> ActionResult:
    def _fn():
        waybill = document_service.generate_waybill(actor, purchase_id, overrides)
        return {"waybill": waybill.to_dict()}
    return _run("generate waybill", _fn, http_status=201)


def generate_purchase_invoice(actor: ActorContext, purchase_id: int) -> ActionResult:
    def _fn():
        invoice = document_service.generate_purchase_invoice(actor, purchase_id)
        return {"invoice": invoice.to_dict()}
    return _run("generate purchase invoice", _fn, http_status=201)


def deposit_funds(actor: ActorContext, customer_id: int, payload: dict) -> ActionResult:
    def _fn():
        data = payload or {}
        txn = wallet_service.deposit_funds(
            actor,
            customer_id,
            coerce_amount_cents(data.get("amount_cents")),
            reference=data.get("reference"),
            description=data.get("description"),
        )
        return {"transaction": txn.to_dict()}
    return _run("deposit funds", _fn, http_status=201)


def adjust_wallet(actor: ActorContext, customer_id: int, payload: dict) -> ActionResult:
    def _fn():
        data = payload or {}
        txn = wallet_service.adjust_wallet(
            actor,
            customer_id,
            coerce_amount_cents(data.get("amount_cents")),
            bool(data.get("is_addition", True)),
            data.get("reason"),
        )
        return {"transaction": txn.to_dict()}
    return _run("adjust wallet", _fn, http_status=201)
