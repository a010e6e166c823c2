"""Parsing of stored prediction values and extraction of observed values.

A prediction value is one of:

* ``"yes"`` / ``"no"`` for occurrence categories (rain, snow),
* ``"<min>-<max>"`` with an optional unit suffix and a hyphen or en-dash,
* ``"<min>+"`` for an open-ended upper bucket,
* a single number, read as a point prediction with a +/-2 unit tolerance.

These helpers are shared by settlement and by cash-out pricing.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass

from weatherbets.data.schemas import WeatherSnapshot

POINT_TOLERANCE = 2.0
MS_TO_KMH = 3.6

RAIN = "rain"
RAINFALL = "rainfall"
SNOW = "snow"
TEMPERATURE = "temperature"
WIND = "wind"
HUMIDITY = "humidity"
PRESSURE = "pressure"
CLOUD_COVERAGE = "cloud_coverage"
DEW_POINT = "dew_point"

_ALIASES = {
    "temp": TEMPERATURE,
    "wind_speed": WIND,
    "clouds": CLOUD_COVERAGE,
    "cloud_cover": CLOUD_COVERAGE,
    "cloudcoverage": CLOUD_COVERAGE,
    "dewpoint": DEW_POINT,
    "precipitation": RAINFALL,
}

_UNITS = re.compile(r"km/h|kmh|hpa|mm|°|%|c", re.IGNORECASE)
_NUMBER = r"-?\d+(?:\.\d+)?"
_RANGE = re.compile(rf"^({_NUMBER})[-–]({_NUMBER})$")
_OPEN_RANGE = re.compile(rf"^({_NUMBER})\+$")
_POINT = re.compile(rf"^{_NUMBER}$")


@dataclass(frozen=True)
class Band:
    """Inclusive numeric interval a prediction accepts."""

    low: float
    high: float

    def contains(self, value: float) -> bool:
        return self.low <= value <= self.high

    def distance(self, value: float) -> float:
        if value < self.low:
            return self.low - value
        if value > self.high:
            return value - self.high
        return 0.0

    @property
    def width(self) -> float:
        return self.high - self.low

    @property
    def midpoint(self) -> float:
        if math.isinf(self.high):
            return self.low
        return (self.low + self.high) / 2


def normalize_kind(kind: str | None) -> str:
    cleaned = re.sub(r"[\s\-]+", "_", (kind or "").strip().lower())
    return _ALIASES.get(cleaned, cleaned)


def normalize_value(value: str | None) -> str:
    return (value or "").strip().lower()


def parse_binary(value: str | None) -> bool | None:
    cleaned = normalize_value(value)
    if cleaned == "yes":
        return True
    if cleaned == "no":
        return False
    return None


def parse_band(value: str | None) -> Band | None:
    """Return the accepted interval for a numeric prediction, or None if unparseable."""

    cleaned = _UNITS.sub("", normalize_value(value)).replace(" ", "")
    if not cleaned:
        return None
    match = _RANGE.match(cleaned)
    if match:
        return Band(float(match.group(1)), float(match.group(2)))
    match = _OPEN_RANGE.match(cleaned)
    if match:
        return Band(float(match.group(1)), math.inf)
    if _POINT.match(cleaned):
        point = float(cleaned)
        return Band(point - POINT_TOLERANCE, point + POINT_TOLERANCE)
    return None


def is_point(value: str | None) -> bool:
    cleaned = _UNITS.sub("", normalize_value(value)).replace(" ", "")
    return bool(_POINT.match(cleaned))


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def observed_value(kind: str, snapshot: WeatherSnapshot) -> float | None:
    """Numeric observation a range prediction of ``kind`` is compared against."""

    kind = normalize_kind(kind)
    if kind == TEMPERATURE:
        return None if snapshot.temperature is None else float(round_half_up(snapshot.temperature))
    if kind in (RAIN, RAINFALL):
        return snapshot.precipitation
    if kind == WIND:
        return None if snapshot.wind_speed is None else snapshot.wind_speed * MS_TO_KMH
    if kind == HUMIDITY:
        return snapshot.humidity
    if kind == PRESSURE:
        return snapshot.pressure
    if kind == CLOUD_COVERAGE:
        return snapshot.cloud_coverage
    if kind == DEW_POINT:
        if snapshot.temperature is None or snapshot.humidity is None:
            return None
        # Linear approximation, good to about 1C above 50% relative humidity.
        return snapshot.temperature - ((100 - snapshot.humidity) / 5)
    return None


def observed_occurrence(kind: str, snapshot: WeatherSnapshot) -> bool | None:
    """Whether rain or snow is falling; None when the snapshot reports no conditions."""

    kind = normalize_kind(kind)
    if not snapshot.conditions:
        return None
    if kind in (RAIN, RAINFALL):
        return snapshot.is_raining
    if kind == SNOW:
        return snapshot.is_snowing
    return None
