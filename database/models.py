from __future__ import annotations

from datetime import datetime
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .session import Base


def _new_id() -> str:
    return str(uuid4())


class MarketProfile(Base):
    """One row per user; seller payout readiness and purchased credits."""

    __tablename__ = "mkt_profiles"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    stripe_account_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    stripe_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_seller: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    credits: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Listing(Base):
    __tablename__ = "mkt_listings"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    # "asset" points at user_assets.id; "uploaded_image" is the legacy upload mapping.
    source_type: Mapped[str] = mapped_column(String(32), nullable=False, default="asset")
    source_id: Mapped[str] = mapped_column(String(64), nullable=False)
    seller_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    buyer_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="active")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class UserAsset(Base):
    __tablename__ = "user_assets"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    source_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    source_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)


class MarketTransaction(Base):
    __tablename__ = "mkt_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    stripe_payment_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    listing_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    buyer_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Payout(Base):
    __tablename__ = "mkt_payouts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    listing_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    stripe_account_id: Mapped[str] = mapped_column(String(255), nullable=False)
    # One payout per captured payment; redelivered successes hit this constraint.
    stripe_payment_id: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True, index=True)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    scheduled_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)


class CreditsLedgerEntry(Base):
    __tablename__ = "credits_ledger"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    payment_intent: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    credits: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(String(64), nullable=False, default="purchase")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
