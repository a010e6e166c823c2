"""Odds pricing tests."""

from __future__ import annotations

from datetime import date, datetime

import pytest

from weatherbets.data.schemas import ForecastDay
from weatherbets.pricing import odds, time_slots
from weatherbets.pricing.policy import PricingPolicy
from weatherbets.pricing.quotes import LegQuoteRequest, OddsQuoter, quote_insurance
from weatherbets.pricing.volatility import NO_DATA_LABEL, VolatilityData

POLICY = PricingPolicy()


def _day(temp_day: float = 22.0, rain_probability: float = 50.0, day: int = 2) -> ForecastDay:
    return ForecastDay(
        date=date(2025, 6, day),
        temp_min=temp_day - 4,
        temp_max=temp_day + 4,
        temp_day=temp_day,
        rain_probability=rain_probability,
    )


@pytest.mark.parametrize(
    ("category", "value", "expected"),
    [
        ("wind", "30+", 3.5),
        ("wind", "30-999", 3.5),
        ("rainfall", "20+", 4.0),
        ("pressure", "1000-1020", 2.0),
        ("cloud_coverage", "0-25", 2.5),
        ("snow", "yes", 5.0),
        ("snow", "no", 1.2),
        ("dew_point", "7-9", 2.0),
    ],
)
def test_static_base_odds(category: str, value: str, expected: float) -> None:
    assert odds.static_base_odds(category, value, POLICY) == pytest.approx(expected)


def test_multipliers_then_clamp() -> None:
    generous = PricingPolicy(global_odds_multiplier=2.0)
    assert odds.static_base_odds("wind", "30+", generous) == pytest.approx(7.0)
    assert odds.static_base_odds("snow", "yes", generous) == pytest.approx(10.0)
    stingy = PricingPolicy(category_multipliers={"snow": 0.5})
    assert odds.static_base_odds("snow", "no", stingy) == pytest.approx(1.1)


def test_rain_odds_follow_forecast_probability() -> None:
    forecast = [_day(rain_probability=50), _day(rain_probability=80, day=3)]
    assert odds.forecast_base_odds("rain", "yes", forecast, 1, POLICY) == pytest.approx(1.9)
    assert odds.forecast_base_odds("rain", "no", forecast, 2, POLICY) == pytest.approx(4.75)


def test_rain_odds_are_clamped() -> None:
    assert odds.forecast_base_odds("rain", "yes", [_day(rain_probability=0)], 1, POLICY) == pytest.approx(10.0)
    assert odds.forecast_base_odds("rain", "yes", [_day(rain_probability=100)], 1, POLICY) == pytest.approx(1.1)


@pytest.mark.parametrize(
    ("value", "forecast_temp", "expected"),
    [
        ("20-25", 22, 1.4),
        ("20-25", 27, 2.45),
        ("20-25", 30, 3.5),
        ("20-25", 34, 4.9),
        ("20-25", 40, 7.0),
        ("10-30", 45, 3.0),
        ("15-25", 20, 1.2),
    ],
)
def test_temperature_odds_by_width_and_distance(value: str, forecast_temp: float, expected: float) -> None:
    result = odds.forecast_base_odds("temperature", value, [_day(temp_day=forecast_temp)], 1, POLICY)
    assert result == pytest.approx(expected)


def test_forecast_day_selection() -> None:
    forecast = [_day(day=2), _day(day=3), _day(day=4)]
    assert odds.forecast_for_day(forecast, 2).date == date(2025, 6, 3)
    assert odds.forecast_for_day(forecast, 10).date == date(2025, 6, 4)
    assert odds.forecast_for_day(forecast, 0).date == date(2025, 6, 2)
    assert odds.forecast_for_day([], 1) is None
    assert odds.forecast_base_odds("temperature", "20-25", [], 1, POLICY) == odds.DEFAULT_BASE_ODDS


def test_missing_forecast_day_still_applies_multipliers() -> None:
    generous = PricingPolicy(global_odds_multiplier=2.0)
    assert odds.forecast_base_odds("temperature", "20-25", [], 1, generous) == pytest.approx(4.0)
    capped = PricingPolicy(category_multipliers={"rain": 10.0})
    assert odds.forecast_base_odds("rain", "yes", [], 1, capped) == pytest.approx(capped.max_odds)


def test_time_decay_multiplier() -> None:
    assert odds.time_decay_multiplier(0, POLICY) == 1.0
    assert odds.time_decay_multiplier(3.5, POLICY) == pytest.approx(1.125)
    assert odds.time_decay_multiplier(7, POLICY) == pytest.approx(1.25)
    assert odds.time_decay_multiplier(30, POLICY) == pytest.approx(1.25)
    days = [odds.time_decay_multiplier(d, POLICY) for d in range(0, 10)]
    assert days == sorted(days)


def test_slot_multipliers() -> None:
    assert time_slots.slot_multiplier("temperature", "evening") == pytest.approx(1.15)
    assert time_slots.slot_multiplier("temperature", None) == pytest.approx(1.0)
    assert time_slots.slot_multiplier("dew_point", None) == pytest.approx(1.0)
    assert time_slots.slot_multiplier("rainfall", "evening") == pytest.approx(1.35)
    assert time_slots.slot_multiplier("humidity", None) == 1.0
    with pytest.raises(ValueError):
        time_slots.slot_multiplier("temperature", "midnight")
    with pytest.raises(ValueError):
        time_slots.slot_multiplier("humidity", "morning")


def test_multi_slot_combo_bonus() -> None:
    single = time_slots.multi_slot_multiplier("temperature", ["evening"])
    combo = time_slots.multi_slot_multiplier("temperature", ["morning", "evening"])
    triple = time_slots.multi_slot_multiplier("temperature", ["morning", "peak", "evening"])
    assert single == pytest.approx(1.15)
    assert combo == pytest.approx(1.1 * 1.15 * 1.2)
    assert triple == pytest.approx(1.1 * 1.0 * 1.15 * 1.3)


def test_price_leg_stacks_multipliers() -> None:
    priced = odds.price_leg(
        "temperature",
        "20-25",
        [_day(temp_day=22)],
        7,
        POLICY,
        time_slot="evening",
        volatility=1.2,
    )
    assert priced.base == pytest.approx(1.4)
    assert priced.time_decay == pytest.approx(1.25)
    assert priced.odds == pytest.approx(1.4 * 1.15 * 1.25 * 1.2, abs=0.01)


def test_combined_odds_is_order_independent_product() -> None:
    legs = [2.0, 1.5, 3.0]
    assert odds.combined_odds(legs) == pytest.approx(9.0)
    assert odds.combined_odds(reversed(legs)) == pytest.approx(9.0)
    assert odds.combined_odds([10.0] * 4) == pytest.approx(10000.0)
    assert odds.combined_odds([]) == 1.0


def test_policy_from_settings() -> None:
    from weatherbets.config import Settings

    settings = Settings(cashout_cap=0.9, house_edge_percentage=7.5)
    policy = PricingPolicy.from_settings(settings)
    assert policy.single_cashout.cap == pytest.approx(0.9)
    assert policy.house_edge_percentage == pytest.approx(7.5)
    assert policy.multi_cashout.cap == pytest.approx(0.8)


def test_insurance_quote_reads_policy_percentages() -> None:
    terms = quote_insurance(155, PricingPolicy())
    assert terms.cost == 15
    assert terms.payout_on_loss == 124
    assert terms.payout_fraction == pytest.approx(0.8)

    stingy = quote_insurance(100, PricingPolicy(insurance_cost_percentage=25.0, insurance_payout_percentage=50.0))
    assert (stingy.cost, stingy.payout_on_loss) == (25, 50)


def _flat_volatility(city: str, category: str, policy: PricingPolicy) -> VolatilityData:
    return VolatilityData(
        city=city,
        category=category,
        avg_accuracy=policy.base_accuracy_threshold,
        total_predictions=0,
        multiplier=1.0,
        label=NO_DATA_LABEL,
    )


def test_quoter_prices_insurance_only_with_a_stake() -> None:
    fetched: list[str] = []

    def forecast(city: str) -> list[ForecastDay]:
        fetched.append(city)
        return [ForecastDay(date=date(2025, 6, 3), temp_min=18, temp_max=26, temp_day=22, rain_probability=60)]

    quoter = OddsQuoter(forecast, policy=PricingPolicy(), volatility=_flat_volatility)
    legs = [
        LegQuoteRequest(city="Durban", prediction_type="rain", prediction_value="yes"),
        LegQuoteRequest(city="durban", prediction_type="temp", prediction_value="20-25"),
    ]
    now = datetime(2025, 6, 2, 12, 0)

    plain = quoter.quote(legs, datetime(2025, 6, 3, 12, 0), now=now)
    assert plain.insurance is None
    assert plain.days_ahead == 1
    assert fetched == ["Durban"]

    insured = quoter.quote(legs, datetime(2025, 6, 3, 12, 0), now=now, stake=200)
    assert insured.insurance.cost == 20
    assert insured.insurance.payout_on_loss == 160
