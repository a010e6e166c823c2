"""Tunable pricing policy, built from settings."""

from __future__ import annotations

from dataclasses import dataclass, field

from weatherbets.config import Settings, get_settings


@dataclass(frozen=True)
class CashOutPolicy:
    base_rate: float
    time_scale: float
    weather_scale: float
    cap: float


@dataclass(frozen=True)
class PricingPolicy:
    """Every knob the odds and cash-out curves read.

    Defaults mirror :class:`weatherbets.config.Settings`; tests build their own
    instance instead of patching settings.
    """

    global_odds_multiplier: float = 1.0
    house_edge_percentage: float = 5.0
    min_odds: float = 1.1
    max_odds: float = 10.0
    category_multipliers: dict[str, float] = field(default_factory=dict)

    insurance_cost_percentage: float = 10.0
    insurance_payout_percentage: float = 80.0

    max_bonus_days: int = 7
    max_early_bird_bonus: float = 0.25
    time_decay_exponent: float = 1.0

    base_accuracy_threshold: float = 80.0
    max_volatility_bonus: float = 0.40
    volatility_exponent: float = 0.7
    volatility_min_data_points: int = 5
    volatility_recency_weight: float = 0.7
    volatility_months: int = 6

    combo_bonus_per_slot: float = 0.10

    cashout_min_hours_before_expiry: float = 1.0
    single_cashout: CashOutPolicy = CashOutPolicy(base_rate=0.40, time_scale=0.35, weather_scale=0.20, cap=0.85)
    multi_cashout: CashOutPolicy = CashOutPolicy(base_rate=0.30, time_scale=0.35, weather_scale=0.15, cap=0.80)

    def category_multiplier(self, category: str) -> float:
        return self.category_multipliers.get(category, 1.0)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> PricingPolicy:
        settings = settings or get_settings()
        return cls(
            global_odds_multiplier=settings.global_odds_multiplier,
            house_edge_percentage=settings.house_edge_percentage,
            min_odds=settings.min_odds,
            max_odds=settings.max_odds,
            insurance_cost_percentage=settings.insurance_cost_percentage,
            insurance_payout_percentage=settings.insurance_payout_percentage,
            max_bonus_days=settings.max_bonus_days,
            max_early_bird_bonus=settings.max_early_bird_bonus,
            time_decay_exponent=settings.time_decay_exponent,
            base_accuracy_threshold=settings.base_accuracy_threshold,
            max_volatility_bonus=settings.max_volatility_bonus,
            volatility_exponent=settings.volatility_exponent,
            volatility_min_data_points=settings.volatility_min_data_points,
            volatility_recency_weight=settings.volatility_recency_weight,
            volatility_months=settings.volatility_months,
            combo_bonus_per_slot=settings.combo_bonus_per_slot,
            cashout_min_hours_before_expiry=settings.cashout_min_hours_before_expiry,
            single_cashout=CashOutPolicy(
                base_rate=settings.cashout_base_rate,
                time_scale=settings.cashout_time_scale,
                weather_scale=settings.cashout_weather_scale,
                cap=settings.cashout_cap,
            ),
            multi_cashout=CashOutPolicy(
                base_rate=settings.multi_cashout_base_rate,
                time_scale=settings.cashout_time_scale,
                weather_scale=settings.multi_cashout_weather_scale,
                cap=settings.multi_cashout_cap,
            ),
        )
