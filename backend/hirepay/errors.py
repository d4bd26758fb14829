# Overview: Expected, recoverable failures raised by the settlement services.

"""
Settlement error taxonomy.

Every error here is an expected business outcome. Services raise them; the
action boundary (services/actions.py) converts them into failed ActionResults
so they never cross the workflow boundary as exceptions.

Messages are written to be rendered directly to staff, so they always name the
offending entity or quantity.
"""

from __future__ import annotations


class SettlementError(Exception):
    """Base class for expected settlement failures."""

    code = "settlement_error"
    http_status = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(SettlementError):
    """400-level input problem."""

    code = "validation_error"


class NotFoundError(SettlementError):
    """Entity missing or outside the caller's business/shop scope."""

    code = "not_found"
    http_status = 404


class PermissionDenied(SettlementError):
    """Caller's role may not perform the operation."""

    code = "permission_denied"
    http_status = 403


class PolicyMissing(SettlementError):
    code = "policy_missing"


class TenorExceeded(SettlementError):
    code = "tenor_exceeded"


class InsufficientStock(SettlementError):
    code = "insufficient_stock"


class InsufficientWalletBalance(SettlementError):
    code = "insufficient_wallet_balance"


class OverpaymentRejected(SettlementError):
    code = "overpayment_rejected"


class AlreadyConfirmed(SettlementError):
    code = "already_confirmed"
    http_status = 409


class AlreadyRejected(SettlementError):
    code = "already_rejected"
    http_status = 409


class WaybillAlreadyExists(SettlementError):
    code = "waybill_already_exists"
    http_status = 409


class DuplicateDocumentNumber(SettlementError):
    """Raised only after every unique-suffix attempt collided."""

    code = "duplicate_document_number"
    http_status = 409
