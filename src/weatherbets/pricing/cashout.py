"""Cash-out valuation for pending wagers.

An offer is a percentage of the potential win:

    base_rate + time_fraction * time_scale + alignment * weather_scale

capped at ``cap``. ``time_fraction`` is how far the wager is through its
lifetime and ``alignment`` (0-1) how well current weather matches the
prediction. Multi-leg wagers use the weakest leg's alignment and a lower base
and cap.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime

from weatherbets.data.schemas import WeatherSnapshot
from weatherbets.pricing.policy import CashOutPolicy, PricingPolicy
from weatherbets.settlement import predictions as p
from weatherbets.settlement.payouts import win_payout
from weatherbets.settlement.types import LegSpec, SettlementUnit


@dataclass
class CashOutOffer:
    amount: int
    potential_win: int
    percentage: int
    time_bonus: int
    weather_bonus: int
    reasoning: str
    eligible: bool = True


def deadline(unit: SettlementUnit) -> datetime | None:
    return unit.expires_at or unit.target_date


def time_fraction(created_at: datetime | None, expires_at: datetime | None, now: datetime) -> float:
    """0 when just placed, 1 at expiry. Without an expiry, one hour of age counts as fully elapsed."""

    if created_at is None:
        return 0.0
    elapsed = (now - created_at).total_seconds()
    if expires_at is None:
        return min(max(elapsed / 3600, 0.0), 1.0)
    total = (expires_at - created_at).total_seconds()
    if total <= 0:
        return 1.0
    return min(max(elapsed / total, 0.0), 1.0)


def can_cash_out(unit: SettlementUnit, now: datetime, policy: PricingPolicy) -> bool:
    expiry = deadline(unit)
    if expiry is None:
        return True
    hours_left = (expiry - now).total_seconds() / 3600
    return hours_left >= policy.cashout_min_hours_before_expiry


def forecast_alignment(kind: str, value: str, snapshot: WeatherSnapshot | None) -> float:
    """How strongly current weather favors the prediction, 0 to 1."""

    if snapshot is None:
        return 0.0
    category = p.normalize_kind(kind)
    binary = p.parse_binary(value)
    if binary is not None:
        observed = p.observed_occurrence(category, snapshot)
        return 1.0 if observed is not None and observed == binary else 0.0

    band = p.parse_band(value)
    actual = p.observed_value(category, snapshot)
    if band is None or actual is None:
        return 0.0
    if p.is_point(value):
        difference = abs(actual - band.midpoint)
        if difference == 0:
            return 1.0
        if difference <= 1:
            return 0.75
        if difference <= 2:
            return 0.5
        if difference <= 4:
            return 0.25
        return 0.0
    if band.contains(actual):
        return 1.0
    if not math.isinf(band.high) and abs(actual - band.midpoint) <= band.width:
        return 0.5
    return 0.0


def _single_reasoning(time_value: float, weather_value: float, percentage: float) -> str:
    reasons: list[str] = []
    if time_value >= 0.20:
        reasons.append("Bet is close to expiration")
    elif time_value >= 0.10:
        reasons.append("Bet is progressing")
    if weather_value >= 0.15:
        reasons.append("Current weather strongly favors your prediction")
    elif weather_value >= 0.05:
        reasons.append("Current weather somewhat favors your prediction")
    elif weather_value == 0 and time_value > 0:
        reasons.append("Weather conditions uncertain")

    if percentage >= 0.85:
        headline = "Excellent cash-out value!"
    elif percentage >= 0.75:
        headline = "Good cash-out value."
    elif percentage >= 0.65:
        headline = "Fair cash-out value."
    else:
        headline = "Early cash-out."
    return " ".join([headline, ". ".join(reasons)]).strip()


def _multi_reasoning(time_value: float, alignments: list[float], percentage: float) -> str:
    reasons: list[str] = []
    if time_value >= 0.20:
        reasons.append("Wager is close to expiration")
    elif time_value >= 0.10:
        reasons.append("Wager is progressing")
    strong = [a >= 0.75 for a in alignments]
    if strong and all(strong):
        reasons.append("All legs looking strong")
    elif any(strong):
        reasons.append("Some legs looking favorable")
    else:
        reasons.append("Weather conditions mixed")

    if percentage >= 0.80:
        headline = "Excellent multi-leg cash-out!"
    elif percentage >= 0.70:
        headline = "Strong multi-leg value."
    elif percentage >= 0.60:
        headline = "Fair multi-leg value."
    else:
        headline = "Early multi-leg cash-out."
    return f"{headline} {'. '.join(reasons)}"


def _leg_alignment(leg: LegSpec, snapshots: Mapping[str, WeatherSnapshot | None]) -> float:
    return forecast_alignment(leg.prediction_type, leg.prediction_value, snapshots.get(leg.city))


def value_cash_out(
    unit: SettlementUnit,
    snapshots: Mapping[str, WeatherSnapshot | None],
    now: datetime,
    policy: PricingPolicy,
) -> CashOutOffer:
    """Price a cash-out. Pure: never touches the wager or the balance."""

    curve: CashOutPolicy = policy.multi_cashout if unit.is_multi_leg else policy.single_cashout
    potential = win_payout(unit.stake, unit.odds)
    fraction = time_fraction(unit.created_at, deadline(unit), now)
    alignments = [_leg_alignment(leg, snapshots) for leg in unit.legs]
    alignment = min(alignments) if alignments else 0.0

    time_value = fraction * curve.time_scale
    weather_value = alignment * curve.weather_scale
    percentage = max(0.0, min(curve.base_rate + time_value + weather_value, curve.cap, 1.0))
    amount = max(0, math.floor(potential * percentage))

    if unit.is_multi_leg:
        reasoning = _multi_reasoning(time_value, alignments, percentage)
    else:
        reasoning = _single_reasoning(time_value, weather_value, percentage)
    return CashOutOffer(
        amount=min(amount, potential),
        potential_win=potential,
        percentage=round(percentage * 100),
        time_bonus=round(time_value * 100),
        weather_bonus=round(weather_value * 100),
        reasoning=reasoning,
        eligible=can_cash_out(unit, now, policy),
    )
