from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .models import CreditsLedgerEntry, Listing, MarketProfile, MarketTransaction, Payout, UserAsset

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION_SQLSTATE = "23505"


def is_unique_violation(exc: IntegrityError) -> bool:
    """True when the integrity error is a duplicate key, not some other constraint."""
    orig = getattr(exc, "orig", None)
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code:
        return code == UNIQUE_VIOLATION_SQLSTATE
    return "UNIQUE constraint failed" in str(orig)


def complete_transaction(db: Session, *, payment_id: str, listing_id: str, buyer_id: str) -> int:
    """Mark the sale's transaction completed; returns the number of rows matched.

    Matched by payment id first. A transaction created before the payment id was
    known is matched by (listing, buyer, pending) and gets the payment id backfilled.
    """
    now = datetime.utcnow()
    try:
        result = db.execute(
            update(MarketTransaction)
            .where(MarketTransaction.stripe_payment_id == payment_id)
            .values(status="completed", updated_at=now)
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Transaction lookup by payment %s failed, trying pending match: %s", payment_id, exc)
    else:
        if result.rowcount:
            return result.rowcount

    result = db.execute(
        update(MarketTransaction)
        .where(
            MarketTransaction.listing_id == listing_id,
            MarketTransaction.buyer_id == buyer_id,
            MarketTransaction.status == "pending",
        )
        .values(status="completed", stripe_payment_id=payment_id, updated_at=now)
    )
    db.commit()
    return result.rowcount


def fail_transaction(db: Session, payment_id: str) -> int:
    result = db.execute(
        update(MarketTransaction)
        .where(MarketTransaction.stripe_payment_id == payment_id)
        .values(status="failed", updated_at=datetime.utcnow())
    )
    db.commit()
    return result.rowcount


def mark_listing_sold(db: Session, *, listing_id: str, buyer_id: str) -> int:
    result = db.execute(
        update(Listing)
        .where(Listing.id == listing_id)
        .values(buyer_id=buyer_id, status="sold", is_active=False, updated_at=datetime.utcnow())
    )
    db.commit()
    return result.rowcount


def release_listing(db: Session, *, listing_id: str, buyer_id: str) -> int:
    """Put a reserved listing back on sale, only while it is still held by ``buyer_id``."""
    result = db.execute(
        update(Listing)
        .where(Listing.id == listing_id, Listing.buyer_id == buyer_id)
        .values(buyer_id=None, status="active", is_active=True, updated_at=datetime.utcnow())
    )
    db.commit()
    return result.rowcount


def get_listing(db: Session, listing_id: str) -> Optional[Listing]:
    return db.execute(select(Listing).where(Listing.id == listing_id)).scalar_one_or_none()


def transfer_asset_owner(db: Session, listing: Listing, buyer_id: str) -> int:
    """Hand the listed asset to the buyer.

    Current listings reference ``user_assets.id`` directly; legacy listings
    reference the upload the asset row was created from.
    """
    stmt = update(UserAsset).values(owner_id=buyer_id)
    if listing.source_type == "asset":
        stmt = stmt.where(UserAsset.id == listing.source_id)
    else:
        stmt = stmt.where(
            UserAsset.source_type == "uploaded_image",
            UserAsset.source_id == listing.source_id,
        )
    result = db.execute(stmt)
    db.commit()
    return result.rowcount


def get_payout_account_id(db: Session, seller_id: str) -> Optional[str]:
    return db.execute(
        select(MarketProfile.stripe_account_id).where(MarketProfile.id == seller_id)
    ).scalar_one_or_none()


def create_payout(
    db: Session,
    *,
    listing_id: str,
    payment_id: str,
    stripe_account_id: str,
    amount_cents: int,
    delay: timedelta,
) -> Payout:
    payout = Payout(
        listing_id=listing_id,
        stripe_payment_id=payment_id,
        stripe_account_id=stripe_account_id,
        amount_cents=amount_cents,
        scheduled_at=datetime.utcnow() + delay,
        status="pending",
    )
    db.add(payout)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise
    db.refresh(payout)
    return payout


def upsert_seller_readiness(db: Session, *, user_id: str, stripe_account_id: str, verified: bool) -> MarketProfile:
    profile = db.execute(select(MarketProfile).where(MarketProfile.id == user_id)).scalar_one_or_none()
    if profile is None:
        profile = MarketProfile(id=user_id)
        db.add(profile)
    profile.stripe_account_id = stripe_account_id
    profile.stripe_verified = verified
    profile.is_seller = verified
    db.commit()
    db.refresh(profile)
    return profile


def update_readiness_by_account(db: Session, *, stripe_account_id: str, verified: bool) -> int:
    result = db.execute(
        update(MarketProfile)
        .where(MarketProfile.stripe_account_id == stripe_account_id)
        .values(stripe_verified=verified, is_seller=verified, updated_at=datetime.utcnow())
    )
    db.commit()
    return result.rowcount


def insert_ledger_entry(
    db: Session,
    *,
    user_id: str,
    payment_intent: str,
    amount_cents: int,
    credits: int,
    reason: str = "purchase",
) -> CreditsLedgerEntry:
    """Insert a ledger row; raises IntegrityError when ``payment_intent`` was already recorded."""
    entry = CreditsLedgerEntry(
        user_id=user_id,
        payment_intent=payment_intent,
        amount_cents=amount_cents,
        credits=credits,
        reason=reason,
    )
    db.add(entry)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise
    db.refresh(entry)
    return entry


def get_credit_balance(db: Session, user_id: str) -> int:
    current = db.execute(select(MarketProfile.credits).where(MarketProfile.id == user_id)).scalar_one_or_none()
    return int(current or 0)


def set_credit_balance(db: Session, *, user_id: str, credits: int) -> MarketProfile:
    profile = db.execute(select(MarketProfile).where(MarketProfile.id == user_id)).scalar_one_or_none()
    if profile is None:
        profile = MarketProfile(id=user_id, credits=credits)
        db.add(profile)
    else:
        profile.credits = credits
    db.commit()
    db.refresh(profile)
    return profile
