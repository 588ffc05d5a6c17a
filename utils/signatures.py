from __future__ import annotations

import logging
from typing import Iterable, Optional

import stripe
from pydantic import ValidationError

from svc.events import WebhookEvent

logger = logging.getLogger(__name__)


class WebhookNotConfiguredError(Exception):
    """Raised when a receiver has no signing secret at all."""


class WebhookSignatureError(Exception):
    """Raised when a payload verifies against none of the configured secrets."""


def verify_event(payload: bytes, signature: Optional[str], secrets: Iterable[Optional[str]]) -> WebhookEvent:
    """Verify ``payload`` against each configured secret in order.

    Events for one endpoint may be signed with the platform secret or with the
    connected-account secret, so the first secret that verifies wins. The
    error raised on failure deliberately carries no detail about which secret
    was tried or why it was rejected.
    """
    candidates = [secret for secret in secrets if secret]
    if not candidates:
        raise WebhookNotConfiguredError("Stripe webhook secret is not configured.")

    for secret in candidates:
        try:
            stripe.Webhook.construct_event(payload, signature or "", secret)
        except (ValueError, stripe.SignatureVerificationError):
            continue
        try:
            return WebhookEvent.model_validate_json(payload)
        except ValidationError:
            logger.warning("Signed Stripe webhook payload has an unexpected shape")
            break

    raise WebhookSignatureError("Invalid Stripe webhook signature.")
