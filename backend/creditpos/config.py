# backend/creditpos/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/creditpos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///creditpos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Seed values for the persisted LedgerSettings row (first read only)
    CURRENCY_SYMBOL = os.environ.get("CURRENCY_SYMBOL", "$")
    TAX_RATE_BPS = int(os.environ.get("TAX_RATE_BPS", "0"))
    # Loyalty points earned per currency unit, in basis points (1000 = 0.1 pt/unit)
    LOYALTY_RATE_BPS = int(os.environ.get("LOYALTY_RATE_BPS", "1000"))

    # Voiding an invoice leaves debt/points untouched unless this is on
    REVERSE_DEBT_ON_VOID = _env_bool("REVERSE_DEBT_ON_VOID", False)

    SYNC_BATCH_SIZE = int(os.environ.get("SYNC_BATCH_SIZE", "50"))
    SYNC_SIMULATED_FAILURE_RATE = float(os.environ.get("SYNC_SIMULATED_FAILURE_RATE", "0.05"))

    BACKUP_RETENTION = int(os.environ.get("BACKUP_RETENTION", "20"))
