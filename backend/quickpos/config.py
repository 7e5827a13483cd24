# backend/quickpos/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/quickpos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///quickpos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # "production" hides stack traces in 500 responses
    QUICKPOS_ENV = os.environ.get("QUICKPOS_ENV", "development")

    # Inventory alerting
    LOW_STOCK_THRESHOLD = _env_int("LOW_STOCK_THRESHOLD", 10)
    EXPIRY_WARNING_DAYS = _env_int("EXPIRY_WARNING_DAYS", 30)

    BCRYPT_ROUNDS = _env_int("BCRYPT_ROUNDS", 12)

    # Deferred-payment sales are due this many days out unless a date is given
    DEBT_DUE_DAYS = _env_int("DEBT_DUE_DAYS", 30)

    ALLOWED_ORIGINS = [
        o.strip()
        for o in os.environ.get(
            "ALLOWED_ORIGINS",
            "http://localhost:3000,http://127.0.0.1:3000",
        ).split(",")
        if o.strip()
    ]
