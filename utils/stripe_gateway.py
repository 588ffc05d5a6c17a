from __future__ import annotations

from typing import Any, Dict, Optional

import stripe

from utils.config import Settings, get_settings
from utils.stripe_objects import stripe_to_dict


class StripeGateway:
    """The two Stripe reads the receivers need, behind an injectable seam."""

    def __init__(self, api_key: Optional[str] = None) -> None:
        self.api_key = api_key

    def retrieve_payment_intent(self, payment_intent_id: str) -> Dict[str, Any]:
        intent = stripe.PaymentIntent.retrieve(payment_intent_id, api_key=self.api_key)
        return stripe_to_dict(intent)

    def retrieve_account(self, account_id: str) -> Dict[str, Any]:
        account = stripe.Account.retrieve(account_id, api_key=self.api_key)
        return stripe_to_dict(account)


def build_gateway(settings: Settings) -> StripeGateway:
    if settings.stripe_secret_key:
        stripe.api_key = settings.stripe_secret_key
    return StripeGateway(api_key=settings.stripe_secret_key)


_gateway: Optional[StripeGateway] = None


def get_stripe_gateway() -> StripeGateway:
    global _gateway
    if _gateway is None:
        _gateway = build_gateway(get_settings())
    return _gateway
