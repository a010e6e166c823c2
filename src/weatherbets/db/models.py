"""ORM models for WeatherBets."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

PENDING = "pending"
WIN = "win"
LOSS = "loss"
CASHED_OUT = "cashed_out"

VIRTUAL = "virtual"
REAL = "real"


def utcnow() -> datetime:
    """Naive UTC timestamp; every column in this schema stores naive UTC."""

    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base declarative class."""


class User(Base):
    """Account with a virtual points balance and a real-money balance in cents."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    username: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    points: Mapped[int] = mapped_column(Integer, default=1000, nullable=False)
    balance_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class Bet(Base):
    """Single weather prediction wager."""

    __tablename__ = "bets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    city: Mapped[str] = mapped_column(String(128), nullable=False)
    prediction_type: Mapped[str] = mapped_column(String(32), nullable=False)
    prediction_value: Mapped[str] = mapped_column(String(64), nullable=False)
    stake: Mapped[int] = mapped_column(Integer, nullable=False)
    odds: Mapped[float] = mapped_column(Float, nullable=False)
    time_slot: Mapped[str | None] = mapped_column(String(32))
    result: Mapped[str] = mapped_column(String(16), default=PENDING, nullable=False, index=True)
    currency_type: Mapped[str] = mapped_column(String(16), default=VIRTUAL, nullable=False)
    has_insurance: Mapped[bool] = mapped_column(Boolean, default=False)
    insurance_cost: Mapped[int] = mapped_column(Integer, default=0)
    insurance_payout_percentage: Mapped[float] = mapped_column(Float, default=0.8)
    target_date: Mapped[datetime | None] = mapped_column(DateTime)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime)
    cashed_out_at: Mapped[datetime | None] = mapped_column(DateTime)
    cashout_amount: Mapped[int | None] = mapped_column(Integer)
    settled_at: Mapped[datetime | None] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class Parlay(Base):
    """Multi-city, all-or-nothing wager."""

    __tablename__ = "parlays"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    total_stake: Mapped[int] = mapped_column(Integer, nullable=False)
    combined_odds: Mapped[float] = mapped_column(Float, nullable=False)
    result: Mapped[str] = mapped_column(String(16), default=PENDING, nullable=False, index=True)
    currency_type: Mapped[str] = mapped_column(String(16), default=VIRTUAL, nullable=False)
    has_insurance: Mapped[bool] = mapped_column(Boolean, default=False)
    insurance_cost: Mapped[int] = mapped_column(Integer, default=0)
    insurance_payout_percentage: Mapped[float] = mapped_column(Float, default=0.8)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime)
    cashed_out_at: Mapped[datetime | None] = mapped_column(DateTime)
    cashout_amount: Mapped[int | None] = mapped_column(Integer)
    settled_at: Mapped[datetime | None] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    legs: Mapped[list[ParlayLeg]] = relationship(
        back_populates="parlay",
        cascade="all, delete-orphan",
        order_by="ParlayLeg.leg_order",
    )


class ParlayLeg(Base):
    """One prediction inside a parlay; each leg names its own city."""

    __tablename__ = "parlay_legs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    parlay_id: Mapped[int] = mapped_column(ForeignKey("parlays.id"), nullable=False, index=True)
    leg_order: Mapped[int] = mapped_column(Integer, default=0)
    city: Mapped[str] = mapped_column(String(128), nullable=False)
    prediction_type: Mapped[str] = mapped_column(String(32), nullable=False)
    prediction_value: Mapped[str] = mapped_column(String(64), nullable=False)
    odds: Mapped[float] = mapped_column(Float, nullable=False)
    time_slot: Mapped[str | None] = mapped_column(String(32))
    result: Mapped[str] = mapped_column(String(16), default=PENDING, nullable=False)

    parlay: Mapped[Parlay] = relationship(back_populates="legs")


class CombinedBet(Base):
    """Several categories for one city and day, all-or-nothing."""

    __tablename__ = "combined_bets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    city: Mapped[str] = mapped_column(String(128), nullable=False)
    target_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    total_stake: Mapped[int] = mapped_column(Integer, nullable=False)
    combined_odds: Mapped[float] = mapped_column(Float, nullable=False)
    result: Mapped[str] = mapped_column(String(16), default=PENDING, nullable=False, index=True)
    currency_type: Mapped[str] = mapped_column(String(16), default=VIRTUAL, nullable=False)
    has_insurance: Mapped[bool] = mapped_column(Boolean, default=False)
    insurance_cost: Mapped[int] = mapped_column(Integer, default=0)
    insurance_payout_percentage: Mapped[float] = mapped_column(Float, default=0.8)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime)
    cashed_out_at: Mapped[datetime | None] = mapped_column(DateTime)
    cashout_amount: Mapped[int | None] = mapped_column(Integer)
    settled_at: Mapped[datetime | None] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    categories: Mapped[list[CombinedBetCategory]] = relationship(
        back_populates="combined_bet",
        cascade="all, delete-orphan",
        order_by="CombinedBetCategory.leg_order",
    )


class CombinedBetCategory(Base):
    """One category of a combined bet; multi-time combos set ``time_slot``."""

    __tablename__ = "combined_bet_categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    combined_bet_id: Mapped[int] = mapped_column(ForeignKey("combined_bets.id"), nullable=False, index=True)
    leg_order: Mapped[int] = mapped_column(Integer, default=0)
    prediction_type: Mapped[str] = mapped_column(String(32), nullable=False)
    prediction_value: Mapped[str] = mapped_column(String(64), nullable=False)
    odds: Mapped[float] = mapped_column(Float, nullable=False)
    time_slot: Mapped[str | None] = mapped_column(String(32))
    result: Mapped[str] = mapped_column(String(16), default=PENDING, nullable=False)

    combined_bet: Mapped[CombinedBet] = relationship(back_populates="categories")


class FinancialTransaction(Base):
    """Ledger row written together with every balance change."""

    __tablename__ = "financial_transactions"
    __table_args__ = (
        UniqueConstraint(
            "reference_type", "reference_id", "transaction_type", "sequence", name="uq_transaction_reference"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    transaction_type: Mapped[str] = mapped_column(String(32), nullable=False)
    currency_type: Mapped[str] = mapped_column(String(16), default=VIRTUAL, nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    balance_before: Mapped[int] = mapped_column(Integer, nullable=False)
    balance_after: Mapped[int] = mapped_column(Integer, nullable=False)
    reference_id: Mapped[int | None] = mapped_column(Integer)
    reference_type: Mapped[str | None] = mapped_column(String(32))
    # Distinguishes repeated entries of one type for one wager (successive partial cash-outs).
    sequence: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    details: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class Notification(Base):
    """In-app notification shown to the user."""

    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(128), nullable=False)
    message: Mapped[str] = mapped_column(String(512), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    related_id: Mapped[int | None] = mapped_column(Integer)
    related_type: Mapped[str | None] = mapped_column(String(32))
    read: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class WeatherAccuracyLog(Base):
    """Predicted versus observed value, scored 0-100."""

    __tablename__ = "weather_accuracy_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    city: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    prediction_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    target_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    predicted_value: Mapped[str] = mapped_column(String(64), nullable=False)
    actual_value: Mapped[str] = mapped_column(String(64), nullable=False)
    accuracy_score: Mapped[float] = mapped_column(Float, nullable=False)
    details: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
