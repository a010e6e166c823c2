"""Odds pricing: base tables, forecast-driven odds and multipliers."""

from __future__ import annotations

import math
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from weatherbets.data.schemas import ForecastDay
from weatherbets.pricing.policy import PricingPolicy
from weatherbets.pricing.time_slots import slot_multiplier
from weatherbets.settlement import predictions as p

DEFAULT_BASE_ODDS = 2.0
OPEN_RANGE_CEILING = 999

STATIC_BASE_ODDS: dict[str, dict[str, float]] = {
    p.RAINFALL: {"0-5": 2.0, "5-10": 2.5, "10-20": 3.0, "20-999": 4.0},
    p.WIND: {"0-10": 2.0, "10-20": 2.2, "20-30": 2.5, "30-999": 3.5},
    p.DEW_POINT: {"0-10": 2.0, "10-15": 2.2, "15-20": 2.5, "20-999": 3.0},
    p.PRESSURE: {"980-1000": 2.5, "1000-1020": 2.0, "1020-1040": 2.5},
    p.CLOUD_COVERAGE: {"0-25": 2.5, "25-50": 2.2, "50-75": 2.2, "75-100": 2.5},
    p.SNOW: {"yes": 5.0, "no": 1.2},
    p.TEMPERATURE: {"20-25": 2.5, "25-30": 2.0, "30-35": 3.0},
}

_OPEN_RANGE = re.compile(r"^(-?\d+(?:\.\d+)?)\+$")


@dataclass
class PricedOdds:
    """Odds for one leg with each multiplier kept for display."""

    category: str
    base: float
    slot_multiplier: float = 1.0
    time_decay: float = 1.0
    volatility: float = 1.0

    @property
    def odds(self) -> float:
        return round(self.base * self.slot_multiplier * self.time_decay * self.volatility, 2)


def clamp_odds(odds: float, policy: PricingPolicy) -> float:
    return max(policy.min_odds, min(policy.max_odds, odds))


def adjust_odds(base: float, category: str, policy: PricingPolicy) -> float:
    """Apply the category and global multipliers, then clamp."""

    return clamp_odds(base * policy.category_multiplier(category) * policy.global_odds_multiplier, policy)


def _table_key(value: str) -> str:
    cleaned = p.normalize_value(value).replace(" ", "")
    match = _OPEN_RANGE.match(cleaned)
    if match:
        return f"{match.group(1)}-{OPEN_RANGE_CEILING}"
    return cleaned


def static_base_odds(category: str, value: str, policy: PricingPolicy) -> float:
    category = p.normalize_kind(category)
    table = STATIC_BASE_ODDS.get(category, {})
    base = table.get(_table_key(value), DEFAULT_BASE_ODDS)
    return adjust_odds(base, category, policy)


def _probability_odds(probability: float, policy: PricingPolicy) -> float:
    edge = 1 - policy.house_edge_percentage / 100
    return (100 / max(probability, 1)) * edge


def forecast_for_day(forecast: Sequence[ForecastDay], days_ahead: int) -> ForecastDay | None:
    if not forecast:
        return None
    index = min(max(days_ahead - 1, 0), len(forecast) - 1)
    return forecast[index]


def temperature_odds(band: p.Band, forecast_temp: float) -> float:
    """Narrow ranges pay more; ranges far from the forecast pay more still."""

    width = band.width
    if width <= 5:
        odds = 3.5
    elif width <= 10:
        odds = 2.2
    elif width <= 15:
        odds = 1.8
    else:
        odds = 1.5

    distance = band.distance(forecast_temp)
    if distance == 0:
        return max(1.2, odds * 0.4)
    if distance <= 3:
        return odds * 0.7
    if distance <= 7:
        return odds
    if distance <= 12:
        return odds * 1.4
    return odds * 2.0


def forecast_base_odds(
    category: str,
    value: str,
    forecast: Sequence[ForecastDay],
    days_ahead: int,
    policy: PricingPolicy,
) -> float:
    """Base odds for a prediction given the forecast for its target day.

    Rain and temperature follow the forecast; every other category prices
    from the static table.
    """

    category = p.normalize_kind(category)
    if category not in (p.RAIN, p.TEMPERATURE):
        return static_base_odds(category, value, policy)

    day = forecast_for_day(forecast, days_ahead)
    if day is None:
        return adjust_odds(DEFAULT_BASE_ODDS, category, policy)

    if category == p.RAIN:
        predicted = p.parse_binary(value)
        probability = day.rain_probability if predicted is not False else 100 - day.rain_probability
        return adjust_odds(_probability_odds(probability, policy), category, policy)

    band = p.parse_band(value)
    if band is None or day.temp_day is None:
        return adjust_odds(DEFAULT_BASE_ODDS, category, policy)
    return adjust_odds(temperature_odds(band, day.temp_day), category, policy)


def time_decay_multiplier(days_ahead: float, policy: PricingPolicy) -> float:
    """Early-bird bonus: 1.0 same day, up to ``1 + max_early_bird_bonus`` at ``max_bonus_days``."""

    if days_ahead <= 0 or policy.max_early_bird_bonus <= 0:
        return 1.0
    fraction = min(days_ahead / policy.max_bonus_days, 1.0)
    return 1.0 + policy.max_early_bird_bonus * math.pow(fraction, policy.time_decay_exponent)


def price_leg(
    category: str,
    value: str,
    forecast: Sequence[ForecastDay],
    days_ahead: int,
    policy: PricingPolicy,
    time_slot: str | None = None,
    volatility: float = 1.0,
) -> PricedOdds:
    category = p.normalize_kind(category)
    return PricedOdds(
        category=category,
        base=forecast_base_odds(category, value, forecast, days_ahead, policy),
        slot_multiplier=slot_multiplier(category, time_slot),
        time_decay=time_decay_multiplier(days_ahead, policy),
        volatility=volatility,
    )


def combined_odds(odds: Iterable[float]) -> float:
    """Product of every leg's odds. Deliberately uncapped."""

    total = 1.0
    for value in odds:
        total *= value
    return total
