# Copyright © 2025 Phaethon Order LLC. All rights reserved. Provided solely for evaluation. See LICENSE.

from __future__ import annotations

import logging
from typing import Optional

from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from database.crud import get_credit_balance, insert_ledger_entry, is_unique_violation, set_credit_balance
from database.session import db_session
from svc.events import CheckoutSessionPayload, WebhookEvent
from utils.payments import LEDGER_REASON_PURCHASE

logger = logging.getLogger(__name__)

CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"


def grant_credits(db: Session, session: CheckoutSessionPayload) -> Optional[int]:
    """Credit a completed credits checkout to the purchaser.

    The ledger row is written first and its unique payment reference is what
    makes a redelivered event a no-op. Returns the new balance, or None when
    nothing was granted.
    """
    metadata = session.credits
    if not metadata.is_credits_purchase:
        return None

    payment_ref = session.payment_reference
    user_id = metadata.user_id
    credits = metadata.credits
    logger.info("Credits checkout %s: user=%s credits=%s ref=%s", session.id, user_id, credits, payment_ref)

    if not user_id or credits is None or credits <= 0:
        logger.warning("Credits checkout %s missing user or credit count; skipping", session.id)
        return None

    try:
        insert_ledger_entry(
            db,
            user_id=user_id,
            payment_intent=payment_ref,
            amount_cents=session.amount_total or 0,
            credits=credits,
            reason=LEDGER_REASON_PURCHASE,
        )
    except IntegrityError as exc:
        if is_unique_violation(exc):
            logger.info("Credits for %s already granted; ignoring redelivery", payment_ref)
        else:
            logger.error("Credits ledger insert failed for %s: %s", payment_ref, exc)
        return None

    # Not atomic with concurrent grants for the same user; the ledger guard only stops replays.
    try:
        current = get_credit_balance(db, user_id)
        balance = current + credits
        set_credit_balance(db, user_id=user_id, credits=balance)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Credit balance update failed for user %s (%s): %s", user_id, payment_ref, exc)
        return None

    logger.info("Granted %s credits to user %s via %s; balance %s", credits, user_id, payment_ref, balance)
    return balance


def handle_credits_event(db: Session, event: WebhookEvent) -> Optional[int]:
    if event.type != CHECKOUT_SESSION_COMPLETED:
        logger.debug("Ignoring Stripe event %s (%s)", event.id, event.type)
        return None
    session = CheckoutSessionPayload.model_validate(event.data.object)
    return grant_credits(db, session)


def process_credits_event(factory: sessionmaker, event: WebhookEvent) -> None:
    """Background entry point: runs after the delivery was acknowledged."""
    try:
        with db_session(factory) as db:
            handle_credits_event(db, event)
    except ValidationError as exc:
        logger.warning("Malformed %s payload in event %s: %s", event.type, event.id, exc)
    except Exception as exc:
        logger.error("Credits handler error for event %s: %s", event.id, exc, exc_info=True)
