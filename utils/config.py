from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional, Tuple

from dotenv import load_dotenv

load_dotenv()

DEFAULT_PAYOUT_DELAY_MINUTES = 10


def _env(name: str) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


def _load_payout_delay() -> int:
    raw = _env("PAYOUT_DELAY_MINUTES")
    if not raw:
        return DEFAULT_PAYOUT_DELAY_MINUTES
    try:
        parsed = int(raw)
    except ValueError:
        return DEFAULT_PAYOUT_DELAY_MINUTES
    return max(parsed, 0)


@dataclass(frozen=True)
class Settings:
    stripe_secret_key: Optional[str] = None
    sales_webhook_secret: Optional[str] = None
    sales_connect_secret: Optional[str] = None
    credits_webhook_secret: Optional[str] = None
    credits_connect_secret: Optional[str] = None
    payout_delay_minutes: int = DEFAULT_PAYOUT_DELAY_MINUTES

    @property
    def sales_secrets(self) -> Tuple[Optional[str], Optional[str]]:
        return self.sales_webhook_secret, self.sales_connect_secret

    @property
    def credits_secrets(self) -> Tuple[Optional[str], Optional[str]]:
        return self.credits_webhook_secret, self.credits_connect_secret


def load_settings() -> Settings:
    return Settings(
        stripe_secret_key=_env("STRIPE_SECRET_KEY"),
        sales_webhook_secret=_env("STRIPE_WEBHOOK_SECRET"),
        sales_connect_secret=_env("STRIPE_CONNECT_WEBHOOK_SECRET"),
        credits_webhook_secret=_env("STRIPE_CREDITS_WEBHOOK_SECRET"),
        credits_connect_secret=_env("STRIPE_CREDITS_CONNECT_SECRET"),
        payout_delay_minutes=_load_payout_delay(),
    )


settings = load_settings()


def get_settings() -> Settings:
    return settings
