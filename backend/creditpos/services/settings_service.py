from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import LedgerSettings
from ..validation import ModelValidationPolicy, ValidationError, validate_payload
from .concurrency import atomic, run_with_retry
from .sync_service import enqueue_action


SETTINGS_ROW_ID = 1

# 100% in basis points
MAX_TAX_RATE_BPS = 10_000
# 100 points per currency unit
MAX_LOYALTY_RATE_BPS = 1_000_000

SETTINGS_POLICY = ModelValidationPolicy(
    writable_fields={"currency_symbol", "tax_rate_bps", "loyalty_rate_bps"},
    required_on_create=set(),
)


class SettingsError(ValueError):
    pass


def get_settings() -> LedgerSettings:
    """
    Return the single settings row, seeding it from app config on first use.

    Flushes but does not commit; callers outside a transaction commit themselves.
    """
    row = db.session.get(LedgerSettings, SETTINGS_ROW_ID)
    if row:
        return row

    cfg = current_app.config
    row = LedgerSettings(
        id=SETTINGS_ROW_ID,
        currency_symbol=cfg.get("CURRENCY_SYMBOL", "$"),
        tax_rate_bps=int(cfg.get("TAX_RATE_BPS", 0)),
        loyalty_rate_bps=int(cfg.get("LOYALTY_RATE_BPS", 0)),
    )
    db.session.add(row)
    db.session.flush()
    return row


def enforce_rules_settings(patch: dict) -> None:
    tax = patch.get("tax_rate_bps")
    if tax is not None and not 0 <= tax <= MAX_TAX_RATE_BPS:
        raise SettingsError(f"tax_rate_bps must be between 0 and {MAX_TAX_RATE_BPS}")
    rate = patch.get("loyalty_rate_bps")
    if rate is not None and not 0 <= rate <= MAX_LOYALTY_RATE_BPS:
        raise SettingsError(f"loyalty_rate_bps must be between 0 and {MAX_LOYALTY_RATE_BPS}")


def update_settings(payload: dict) -> LedgerSettings:
    """Apply a partial update. Amounts already recorded are not re-rated."""
    try:
        patch = validate_payload(model=LedgerSettings, payload=payload, policy=SETTINGS_POLICY, partial=True)
    except ValidationError as exc:
        raise SettingsError(str(exc))
    enforce_rules_settings(patch)

    def _op():
        with atomic():
            row = get_settings()
            for key, value in patch.items():
                setattr(row, key, value)
            enqueue_action("settings.updated", row.to_dict())
        return row

    return run_with_retry(_op)
