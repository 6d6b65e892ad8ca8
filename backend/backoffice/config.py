# backend/backoffice/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///backoffice.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Oversold stock is a soft signal unless this is turned off
    INVENTORY_ALLOW_NEGATIVE_STOCK = _env_flag("INVENTORY_ALLOW_NEGATIVE_STOCK", True)

    DEFAULT_CURRENCY = os.environ.get("DEFAULT_CURRENCY", "PKR")
    DEFAULT_REORDER_THRESHOLD = int(os.environ.get("DEFAULT_REORDER_THRESHOLD", "10"))

    CONCURRENCY_RETRY_ATTEMPTS = int(os.environ.get("CONCURRENCY_RETRY_ATTEMPTS", "3"))
