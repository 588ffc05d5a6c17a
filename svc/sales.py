# Copyright © 2025 Phaethon Order LLC. All rights reserved. Provided solely for evaluation. See LICENSE.

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, TypeVar

from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from database.crud import (
    complete_transaction,
    create_payout,
    fail_transaction,
    get_listing,
    get_payout_account_id,
    is_unique_violation,
    mark_listing_sold,
    release_listing,
    transfer_asset_owner,
    update_readiness_by_account,
    upsert_seller_readiness,
)
from svc.events import AccountPayload, ChargePayload, CheckoutSessionPayload, PaymentIntentPayload, WebhookEvent
from utils.config import DEFAULT_PAYOUT_DELAY_MINUTES
from utils.payments import net_payout_cents, payout_delay
from utils.stripe_gateway import StripeGateway
from utils.stripe_objects import coerce_stripe_id

logger = logging.getLogger(__name__)

T = TypeVar("T")

PAYMENT_SUCCEEDED = "payment_intent.succeeded"
PAYMENT_FAILED = "payment_intent.payment_failed"
PAYMENT_CANCELED = "payment_intent.canceled"
CHECKOUT_ASYNC_PAYMENT_FAILED = "checkout.session.async_payment_failed"
CHARGE_REFUNDED = "charge.refunded"
ACCOUNT_UPDATED = "account.updated"
CAPABILITY_UPDATED = "capability.updated"
ACCOUNT_APPLICATION_AUTHORIZED = "account.application.authorized"


@dataclass
class SaleContext:
    db: Session
    gateway: StripeGateway
    payout_delay_minutes: int = DEFAULT_PAYOUT_DELAY_MINUTES


def _guarded(db: Session, step: str, func: Callable[..., T], *args: Any, **kwargs: Any) -> Optional[T]:
    """Run one store write; a failure is logged and does not stop the caller."""
    try:
        return func(db, *args, **kwargs)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("%s failed: %s", step, exc)
        return None


def transfer_asset_to_buyer(db: Session, listing_id: str, buyer_id: str) -> None:
    listing = _guarded(db, "listing lookup", get_listing, listing_id)
    if listing is None:
        logger.warning("Asset transfer skipped: listing %s not found", listing_id)
        return

    updated = _guarded(db, f"asset transfer ({listing.source_type})", transfer_asset_owner, listing, buyer_id)
    if updated is None:
        return
    if updated:
        logger.info("Transferred %s asset %s to buyer %s", listing.source_type, listing.source_id, buyer_id)
    else:
        logger.warning(
            "Asset transfer matched no rows for listing %s (%s %s)",
            listing_id,
            listing.source_type,
            listing.source_id,
        )


def queue_payout_if_possible(
    db: Session,
    listing_id: str,
    payment_id: str,
    seller_id: Optional[str],
    net_cents: int,
    delay_minutes: int = DEFAULT_PAYOUT_DELAY_MINUTES,
) -> None:
    if not seller_id or net_cents <= 0:
        return

    account_id = _guarded(db, "seller payout account lookup", get_payout_account_id, seller_id)
    if not account_id:
        logger.info("No payout queued for listing %s: seller %s has no Stripe account", listing_id, seller_id)
        return

    try:
        payout = create_payout(
            db,
            listing_id=listing_id,
            payment_id=payment_id,
            stripe_account_id=account_id,
            amount_cents=net_cents,
            delay=payout_delay(delay_minutes),
        )
    except IntegrityError as exc:
        if is_unique_violation(exc):
            logger.info("Payout for payment %s already queued; ignoring redelivery", payment_id)
        else:
            logger.error("payout insert failed: %s", exc)
        return
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("payout insert failed: %s", exc)
        return
    logger.info("Payout queued for listing %s: %s cents at %s", listing_id, net_cents, payout.scheduled_at)


def settle_payment(ctx: SaleContext, payment_intent_id: str) -> None:
    """Apply a successful sale after confirming the payment with Stripe."""
    # The event snapshot can lag a near-simultaneous update, so trust only the live object.
    fresh = PaymentIntentPayload.model_validate(ctx.gateway.retrieve_payment_intent(payment_intent_id))
    if fresh.status != "succeeded":
        logger.warning("PaymentIntent %s not succeeded after refetch: %s", fresh.id, fresh.status)
        return

    sale = fresh.sale
    if not sale.listing_id or not sale.buyer_id:
        logger.warning(
            "PaymentIntent %s missing sale metadata (listing=%s, buyer=%s)",
            fresh.id,
            sale.listing_id,
            sale.buyer_id,
        )
        return

    db = ctx.db
    net_cents = net_payout_cents(fresh.captured_cents, fresh.platform_fee_cents)

    completed = _guarded(
        db,
        "transaction completion",
        complete_transaction,
        payment_id=fresh.id,
        listing_id=sale.listing_id,
        buyer_id=sale.buyer_id,
    )
    if completed == 0:
        logger.warning("No transaction found to complete for PaymentIntent %s", fresh.id)

    _guarded(db, "listing update", mark_listing_sold, listing_id=sale.listing_id, buyer_id=sale.buyer_id)

    transfer_asset_to_buyer(db, sale.listing_id, sale.buyer_id)

    queue_payout_if_possible(db, sale.listing_id, fresh.id, sale.seller_id, net_cents, ctx.payout_delay_minutes)

    logger.info(
        "Settled PaymentIntent %s: listing %s sold to %s (net %s cents)",
        fresh.id,
        sale.listing_id,
        sale.buyer_id,
        net_cents,
    )


def reverse_payment(
    db: Session,
    payment_id: str,
    listing_id: Optional[str] = None,
    buyer_id: Optional[str] = None,
) -> None:
    """Mark a payment failed and put its listing back on sale."""
    failed = _guarded(db, "transaction failure update", fail_transaction, payment_id)
    if failed is not None:
        logger.info("Marked %s transaction(s) failed for payment %s", failed, payment_id)

    if not listing_id or not buyer_id:
        return

    released = _guarded(db, "listing release", release_listing, listing_id=listing_id, buyer_id=buyer_id)
    if released:
        logger.info("Listing %s released from buyer %s", listing_id, buyer_id)
    elif released == 0:
        # Another buyer holds it now, or it was never reserved for this one.
        logger.info("Listing %s not released: no longer held by buyer %s", listing_id, buyer_id)


def sync_seller_readiness(db: Session, account: AccountPayload) -> None:
    verified = account.is_verified

    if account.user_id:
        _guarded(
            db,
            "seller profile upsert",
            upsert_seller_readiness,
            user_id=account.user_id,
            stripe_account_id=account.id,
            verified=verified,
        )

    _guarded(
        db,
        "seller profile update",
        update_readiness_by_account,
        stripe_account_id=account.id,
        verified=verified,
    )
    logger.info("Stripe account %s readiness: verified=%s", account.id, verified)


def _on_payment_succeeded(ctx: SaleContext, event: WebhookEvent) -> None:
    payment_intent = PaymentIntentPayload.model_validate(event.data.object)
    settle_payment(ctx, payment_intent.id)


def _on_payment_failed(ctx: SaleContext, event: WebhookEvent) -> None:
    payment_intent = PaymentIntentPayload.model_validate(event.data.object)
    sale = payment_intent.sale
    reverse_payment(ctx.db, payment_intent.id, sale.listing_id, sale.buyer_id)


def _on_async_payment_failed(ctx: SaleContext, event: WebhookEvent) -> None:
    session = CheckoutSessionPayload.model_validate(event.data.object)
    sale = session.sale
    reverse_payment(ctx.db, session.payment_reference, sale.listing_id, sale.buyer_id)


def _on_charge_refunded(ctx: SaleContext, event: WebhookEvent) -> None:
    charge = ChargePayload.model_validate(event.data.object)
    if not charge.payment_intent_id:
        logger.warning("Refunded charge %s has no PaymentIntent; nothing to reverse", charge.id)
        return
    sale = charge.sale
    reverse_payment(ctx.db, charge.payment_intent_id, sale.listing_id, sale.buyer_id)


def _on_account_changed(ctx: SaleContext, event: WebhookEvent) -> None:
    obj = event.data.object
    if event.type == ACCOUNT_UPDATED or obj.get("object") == "account":
        account = AccountPayload.model_validate(obj)
    else:
        # Capability and application events carry their own object; load the account they belong to.
        account_id = coerce_stripe_id(obj.get("account")) or event.account
        if not account_id:
            logger.warning("%s event %s does not identify a connected account", event.type, event.id)
            return
        account = AccountPayload.model_validate(ctx.gateway.retrieve_account(account_id))
    sync_seller_readiness(ctx.db, account)


SALE_HANDLERS: Dict[str, Callable[[SaleContext, WebhookEvent], None]] = {
    PAYMENT_SUCCEEDED: _on_payment_succeeded,
    PAYMENT_FAILED: _on_payment_failed,
    PAYMENT_CANCELED: _on_payment_failed,
    CHECKOUT_ASYNC_PAYMENT_FAILED: _on_async_payment_failed,
    CHARGE_REFUNDED: _on_charge_refunded,
    ACCOUNT_UPDATED: _on_account_changed,
    CAPABILITY_UPDATED: _on_account_changed,
    ACCOUNT_APPLICATION_AUTHORIZED: _on_account_changed,
}


def handle_sale_event(ctx: SaleContext, event: WebhookEvent) -> bool:
    """Dispatch a verified event to its handler.

    Returns True when a handler ran to completion. Unknown event types are
    ignored. Handler failures are logged here and never re-raised, the
    delivery is acknowledged either way.
    """
    handler = SALE_HANDLERS.get(event.type)
    if handler is None:
        logger.debug("Ignoring Stripe event %s (%s)", event.id, event.type)
        return False

    try:
        handler(ctx, event)
    except ValidationError as exc:
        logger.warning("Malformed %s payload in event %s: %s", event.type, event.id, exc)
        return False
    except Exception as exc:
        logger.error("Failed to handle Stripe event %s (%s): %s", event.id, event.type, exc, exc_info=True)
        return False
    return True
