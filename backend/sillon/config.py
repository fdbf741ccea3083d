# backend/sillon/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/sillon.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///sillon.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Oversell is recorded and logged, not blocked
    SILLON_ALLOW_NEGATIVE_STOCK = _env_flag("SILLON_ALLOW_NEGATIVE_STOCK", True)

    # Attempts made by the HTTP adapter when a command hits a concurrent write
    SILLON_CONCURRENCY_RETRIES = int(os.environ.get("SILLON_CONCURRENCY_RETRIES", "3"))

    # Document number prefixes
    SILLON_ORDER_NUMBER_PREFIX = os.environ.get("SILLON_ORDER_NUMBER_PREFIX", "CMD")
    SILLON_PAYOUT_INVOICE_PREFIX = os.environ.get("SILLON_PAYOUT_INVOICE_PREFIX", "REV")
    SILLON_CREDIT_NOTE_PREFIX = os.environ.get("SILLON_CREDIT_NOTE_PREFIX", "AV")


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SILLON_ALLOW_NEGATIVE_STOCK = True
