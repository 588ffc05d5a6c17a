"""Typed views over the Stripe webhook payloads the receivers act on.

Stripe sends loosely typed objects and string-only metadata bags. Everything
the handlers read is parsed here into optional fields so that an absent or
malformed value becomes ``None`` instead of an exception further down.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from utils.payments import CREDITS_PURCHASE_KIND
from utils.stripe_objects import coerce_stripe_id, to_int


class _StripeModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


def _clean_metadata(value: Any) -> Dict[str, str]:
    if not isinstance(value, dict):
        return {}
    return {str(k): str(v) for k, v in value.items() if v is not None}


class _MetadataModel(_StripeModel):
    @field_validator("*", mode="before")
    @classmethod
    def blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class SaleMetadata(_MetadataModel):
    listing_id: Optional[str] = Field(default=None, alias="mkt_listing_id")
    buyer_id: Optional[str] = Field(default=None, alias="mkt_buyer_id")
    seller_id: Optional[str] = Field(default=None, alias="mkt_seller_id")


class CreditsMetadata(_MetadataModel):
    kind: Optional[str] = None
    user_id: Optional[str] = Field(default=None, alias="userId")
    credits: Optional[int] = None

    @field_validator("credits", mode="before")
    @classmethod
    def parse_credits(cls, value: Any) -> Optional[int]:
        return to_int(value)

    @property
    def is_credits_purchase(self) -> bool:
        return self.kind == CREDITS_PURCHASE_KIND


class _WithMetadata(_StripeModel):
    metadata: Dict[str, str] = Field(default_factory=dict)

    @field_validator("metadata", mode="before")
    @classmethod
    def clean_metadata(cls, value: Any) -> Dict[str, str]:
        return _clean_metadata(value)


class EventData(_StripeModel):
    object: Dict[str, Any]


class WebhookEvent(_StripeModel):
    id: Optional[str] = None
    type: str
    account: Optional[str] = None
    livemode: bool = False
    data: EventData


class PaymentIntentPayload(_WithMetadata):
    id: str
    status: Optional[str] = None
    amount: Optional[int] = None
    amount_received: Optional[int] = None
    application_fee_amount: Optional[int] = None

    @property
    def sale(self) -> SaleMetadata:
        return SaleMetadata.model_validate(self.metadata)

    @property
    def captured_cents(self) -> int:
        if self.amount_received is not None:
            return self.amount_received
        return self.amount or 0

    @property
    def platform_fee_cents(self) -> int:
        return self.application_fee_amount or 0


class CheckoutSessionPayload(_WithMetadata):
    id: str
    payment_intent: Optional[Union[str, Dict[str, Any]]] = None
    amount_total: Optional[int] = None

    @property
    def payment_reference(self) -> str:
        """The PaymentIntent id, or the session id when none was attached."""
        return coerce_stripe_id(self.payment_intent) or self.id

    @property
    def sale(self) -> SaleMetadata:
        return SaleMetadata.model_validate(self.metadata)

    @property
    def credits(self) -> CreditsMetadata:
        return CreditsMetadata.model_validate(self.metadata)


class ChargePayload(_WithMetadata):
    id: str
    payment_intent: Optional[Union[str, Dict[str, Any]]] = None

    @property
    def payment_intent_id(self) -> Optional[str]:
        return coerce_stripe_id(self.payment_intent)

    @property
    def sale(self) -> SaleMetadata:
        return SaleMetadata.model_validate(self.metadata)


class AccountRequirements(_StripeModel):
    currently_due: Optional[List[str]] = None


class AccountPayload(_WithMetadata):
    id: str
    object: Optional[str] = None
    charges_enabled: Optional[bool] = None
    payouts_enabled: Optional[bool] = None
    requirements: Optional[AccountRequirements] = None

    @property
    def user_id(self) -> Optional[str]:
        return self.metadata.get("user_id") or None

    @property
    def is_verified(self) -> bool:
        currently_due = (self.requirements.currently_due if self.requirements else None) or []
        return self.charges_enabled is True and self.payouts_enabled is True and len(currently_due) == 0
