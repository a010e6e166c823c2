"""Environment-driven configuration helpers for WeatherBets."""

from __future__ import annotations

import os
from functools import lru_cache

from pydantic import AnyUrl, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or .env files."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    database_url: AnyUrl | str = Field(default="sqlite:///./weatherbets.db")

    openweather_api_key: str = Field(default="", validation_alias="OPENWEATHER_API_KEY")
    openweather_base_url: str = Field(default="https://api.openweathermap.org")
    weather_timeout_seconds: float = Field(default=15.0, gt=0.0)

    weatherbets_api_key: str = Field(default="", validation_alias="WEATHERBETS_API_KEY")

    # Odds table knobs
    global_odds_multiplier: float = Field(default=1.0, gt=0.0)
    house_edge_percentage: float = Field(default=5.0, ge=0.0, lt=100.0)
    min_odds: float = Field(default=1.1, ge=1.0)
    max_odds: float = Field(default=10.0, ge=1.0)

    # Insurance
    insurance_cost_percentage: float = Field(default=10.0, ge=0.0, le=100.0)
    insurance_payout_percentage: float = Field(default=80.0, ge=0.0, le=100.0)

    # Early bird bonus
    max_bonus_days: int = Field(default=7, ge=1)
    max_early_bird_bonus: float = Field(default=0.25, ge=0.0, le=5.0)
    time_decay_exponent: float = Field(default=1.0, gt=0.0)

    # Forecast volatility
    base_accuracy_threshold: float = Field(default=80.0, gt=0.0, le=100.0)
    max_volatility_bonus: float = Field(default=0.40, ge=0.0, le=5.0)
    volatility_exponent: float = Field(default=0.7, gt=0.0)
    volatility_min_data_points: int = Field(default=5, ge=0)
    volatility_recency_weight: float = Field(default=0.7, ge=0.0, le=1.0)
    volatility_months: int = Field(default=6, ge=1)

    # Multi-time combos
    combo_bonus_per_slot: float = Field(default=0.10, ge=0.0, le=1.0)

    # Cash-out
    cashout_min_hours_before_expiry: float = Field(default=1.0, ge=0.0)
    cashout_base_rate: float = Field(default=0.40, ge=0.0, le=1.0)
    cashout_time_scale: float = Field(default=0.35, ge=0.0, le=1.0)
    cashout_weather_scale: float = Field(default=0.20, ge=0.0, le=1.0)
    cashout_cap: float = Field(default=0.85, ge=0.0, le=1.0)
    multi_cashout_base_rate: float = Field(default=0.30, ge=0.0, le=1.0)
    multi_cashout_weather_scale: float = Field(default=0.15, ge=0.0, le=1.0)
    multi_cashout_cap: float = Field(default=0.80, ge=0.0, le=1.0)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached application settings."""

    return Settings()  # type: ignore[call-arg]


def get_openweather_api_key() -> str:
    """Return the OpenWeather API key or raise a helpful error."""

    key = os.getenv("OPENWEATHER_API_KEY") or get_settings().openweather_api_key
    if not key:
        raise RuntimeError(
            "OPENWEATHER_API_KEY is not configured. "
            "Set it in .env for local dev or in the scheduler's environment."
        )
    return key


def get_api_access_key() -> str:
    key = os.getenv("WEATHERBETS_API_KEY") or get_settings().weatherbets_api_key
    if not key:
        raise RuntimeError(
            "WEATHERBETS_API_KEY is not configured. Set it in your environment before exposing the API."
        )
    return key
