# backend/clinic/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/clinic.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///clinic.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Decides which visits are "today" for queue tokens
    CLINIC_TIMEZONE = os.environ.get("CLINIC_TIMEZONE", "UTC")

    # Transient lock failures (deadlock, lock wait, stale rows)
    DB_RETRY_ATTEMPTS = int(os.environ.get("DB_RETRY_ATTEMPTS", "3"))
    DB_RETRY_BACKOFF_BASE = float(os.environ.get("DB_RETRY_BACKOFF_BASE", "0.1"))

    # Overcollection is reconciled later through the refund workflow
    ALLOW_OVERPAYMENT = _env_bool("ALLOW_OVERPAYMENT", True)
    ALLOCATION_TOLERANCE_CENTS = int(os.environ.get("ALLOCATION_TOLERANCE_CENTS", "0"))
