"""Pydantic schemas for the WeatherBets API."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class SettleResponse(BaseModel):
    resolved_bets: int
    resolved_parlays: int
    resolved_combined_bets: int
    skipped: int
    conflicts: int = 0
    failed: int = 0
    weather_calls: int = 0
    details: dict[str, str] = Field(default_factory=dict)


class PendingResponse(BaseModel):
    bet: int
    parlay: int
    combined_bet: int


class LegQuote(BaseModel):
    city: str = Field(min_length=1)
    prediction_type: str
    prediction_value: str
    time_slots: list[str] = Field(default_factory=list)


class OddsQuoteRequest(BaseModel):
    target_date: datetime
    legs: list[LegQuote] = Field(min_length=1, max_length=10)
    stake: int | None = Field(default=None, gt=0)


class PricedLeg(BaseModel):
    city: str
    category: str
    prediction_value: str
    base_odds: float
    slot_multiplier: float
    time_decay: float
    volatility: float
    volatility_label: str
    odds: float


class InsuranceTerms(BaseModel):
    cost: int
    payout_on_loss: int
    payout_fraction: float


class OddsQuoteResponse(BaseModel):
    days_ahead: int
    legs: list[PricedLeg]
    combined_odds: float
    insurance: InsuranceTerms | None = None


class CashOutResponse(BaseModel):
    kind: str
    wager_id: int
    amount: int
    potential_win: int
    percentage: int
    time_bonus: int
    weather_bonus: int
    reasoning: str
    eligible: bool
    executed: bool = False


class PartialCashOutRequest(BaseModel):
    percentage: int = Field(ge=1, le=100)


class PartialCashOutResponse(BaseModel):
    kind: str
    wager_id: int
    percentage: int
    amount: int
    remaining_stake: int
    offer: CashOutResponse
