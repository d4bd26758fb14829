# backend/hirepay/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/hirepay.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///hirepay.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Attempts at issuing a unique-suffix document number before giving up
    DOCUMENT_NUMBER_ATTEMPTS = int(os.environ.get("DOCUMENT_NUMBER_ATTEMPTS", "5"))

    # Days past due_date (grace not added) before a purchase is DEFAULTED
    DEFAULT_AFTER_DAYS = int(os.environ.get("DEFAULT_AFTER_DAYS", "90"))

    # Used for purchase invoices when a business has no invoice_prefix
    DEFAULT_INVOICE_PREFIX = os.environ.get("DEFAULT_INVOICE_PREFIX", "HP")

    # Pluggable collaborators (callables). None selects the built-in behavior.
    ACTOR_RESOLVER = None
    PAYMENT_RECEIPT_SENDER = None
