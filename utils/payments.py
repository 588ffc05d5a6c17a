from __future__ import annotations

from datetime import timedelta

CREDITS_PURCHASE_KIND = "credits_purchase"
LEDGER_REASON_PURCHASE = "purchase"


def net_payout_cents(captured_cents: int, platform_fee_cents: int) -> int:
    """Seller share of a sale; never negative."""
    return max(0, int(captured_cents) - int(platform_fee_cents))


def payout_delay(minutes: int) -> timedelta:
    if minutes < 0:
        raise ValueError(f"Payout delay must not be negative, got {minutes} minutes")
    return timedelta(minutes=minutes)
