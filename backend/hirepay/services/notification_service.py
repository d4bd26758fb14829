# Overview: Post-commit customer notifications for settled payments.

from __future__ import annotations

from flask import current_app


def _default_sender(payment_id: int) -> None:
    current_app.logger.info("Payment receipt ready for payment_id=%s", payment_id)


def send_payment_receipt(payment_id: int) -> bool:
    """
    Hand a confirmed payment to the configured receipt sender.

    Called only after the settlement transaction has committed. A failing
    sender is logged and reported as False; it never undoes settlement.
    """
    sender = current_app.config.get("PAYMENT_RECEIPT_SENDER") or _default_sender
    try:
        sender(payment_id)
    except Exception:
        current_app.logger.warning("Failed to send payment receipt for payment_id=%s", payment_id, exc_info=True)
        return False
    return True
