"""Pydantic schemas for weather provider responses and internal data."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field

RAIN_TERMS = ("rain", "drizzle", "shower", "thunderstorm")
SNOW_TERMS = ("snow", "sleet")


class WeatherSnapshot(BaseModel):
    """Point-in-time observation for one city.

    Every numeric field is optional so a partial provider payload still parses;
    consumers treat a missing field as "no observation".
    """

    city: str
    observed_at: datetime | None = None
    temperature: float | None = Field(default=None, description="degrees Celsius")
    humidity: float | None = Field(default=None, description="percent")
    pressure: float | None = Field(default=None, description="hPa")
    wind_speed: float | None = Field(default=None, description="m/s, provider native unit")
    cloud_coverage: float | None = Field(default=None, description="percent")
    precipitation: float | None = Field(default=None, description="mm over the last hours")
    conditions: list[str] = Field(default_factory=list)

    @property
    def condition_text(self) -> str:
        return " ".join(self.conditions).lower()

    @property
    def is_raining(self) -> bool:
        text = self.condition_text
        return any(term in text for term in RAIN_TERMS)

    @property
    def is_snowing(self) -> bool:
        text = self.condition_text
        return any(term in text for term in SNOW_TERMS)


class ForecastDay(BaseModel):
    """Daily forecast folded from the provider's 3-hourly steps."""

    date: date
    temp_min: float
    temp_max: float
    temp_day: float
    rain_probability: float = Field(ge=0.0, le=100.0, description="percent")
    condition: str = ""
