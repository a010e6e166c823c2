"""Thin client for the OpenWeather current-conditions and forecast APIs."""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx
from tenacity import RetryCallState, retry, stop_after_attempt, wait_fixed

from weatherbets.config import get_openweather_api_key, get_settings
from weatherbets.data.schemas import ForecastDay, WeatherSnapshot
from weatherbets.errors import WeatherUnavailableError

logger = logging.getLogger(__name__)


def _retry_log(retry_state: RetryCallState) -> None:  # pragma: no cover - logging helper
    attempt = retry_state.attempt_number
    exception = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning("OpenWeather retry attempt %s due to %s", attempt, exception)


def _number(value: Any) -> float | None:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _section(payload: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = payload.get(key)
    return value if isinstance(value, dict) else {}


def parse_current(city: str, payload: Dict[str, Any]) -> WeatherSnapshot:
    """Map a ``/data/2.5/weather`` payload onto a snapshot.

    Sections of the wrong shape are ignored, so the snapshot simply lacks
    those observations.
    """

    if not isinstance(payload, dict):
        payload = {}
    main = _section(payload, "main")
    wind = _section(payload, "wind")
    clouds = _section(payload, "clouds")
    rain = _section(payload, "rain")
    weather = payload.get("weather")
    conditions: list[str] = []
    for entry in weather if isinstance(weather, list) else []:
        if not isinstance(entry, dict):
            continue
        for key in ("main", "description"):
            text = entry.get(key)
            if text:
                conditions.append(str(text))
    precipitation = None
    if rain:
        precipitation = (_number(rain.get("1h")) or 0.0) + (_number(rain.get("3h")) or 0.0)
    elif main:
        precipitation = 0.0
    observed = payload.get("dt")
    return WeatherSnapshot(
        city=city,
        observed_at=datetime.fromtimestamp(observed, tz=timezone.utc) if isinstance(observed, (int, float)) else None,
        temperature=_number(main.get("temp")),
        humidity=_number(main.get("humidity")),
        pressure=_number(main.get("pressure")),
        wind_speed=_number(wind.get("speed")),
        cloud_coverage=_number(clouds.get("all")),
        precipitation=precipitation,
        conditions=conditions,
    )


def _condition(step: Dict[str, Any]) -> str:
    weather = step.get("weather")
    if isinstance(weather, list) and weather and isinstance(weather[0], dict):
        return str(weather[0].get("main") or "")
    return ""


def fold_forecast(payload: Dict[str, Any]) -> List[ForecastDay]:
    """Fold 3-hourly forecast steps into one entry per calendar day."""

    raw_steps = payload.get("list") if isinstance(payload, dict) else None
    steps: dict[Any, list[dict]] = defaultdict(list)
    for step in raw_steps if isinstance(raw_steps, list) else []:
        if not isinstance(step, dict):
            continue
        stamp = step.get("dt")
        if not isinstance(stamp, (int, float)):
            continue
        steps[datetime.fromtimestamp(stamp, tz=timezone.utc).date()].append(step)

    days: list[ForecastDay] = []
    for day, entries in sorted(steps.items()):
        mains = [_section(e, "main") for e in entries]
        temps = [t for t in (_number(m.get("temp")) for m in mains) if t is not None]
        if not temps:
            continue
        lows = [v for v in (_number(m.get("temp_min")) for m in mains) if v is not None]
        highs = [v for v in (_number(m.get("temp_max")) for m in mains) if v is not None]
        pops = [_number(e.get("pop")) or 0.0 for e in entries]
        labels = Counter(label for label in (_condition(e) for e in entries) if label)
        days.append(
            ForecastDay(
                date=day,
                temp_min=min(lows or temps),
                temp_max=max(highs or temps),
                temp_day=sum(temps) / len(temps),
                rain_probability=min(max(max(pops) * 100.0, 0.0), 100.0),
                condition=labels.most_common(1)[0][0] if labels else "",
            )
        )
    return days


class OpenWeatherClient:
    """Convenient wrapper for the OpenWeather API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        self.api_key = api_key or get_openweather_api_key()
        self.base_url = (base_url or settings.openweather_base_url).rstrip("/")
        self._client = httpx.Client(timeout=settings.weather_timeout_seconds, transport=transport)

    def __enter__(self) -> "OpenWeatherClient":  # pragma: no cover - context sugar
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    @retry(stop=stop_after_attempt(3), wait=wait_fixed(1), after=_retry_log, reraise=True)
    def _request(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        response = self._client.get(url, params={**params, "appid": self.api_key, "units": "metric"})
        response.raise_for_status()
        return response.json()

    def get_current(self, city: str) -> WeatherSnapshot:
        """Return current conditions for a city.

        Raises ``WeatherUnavailableError`` when the request fails or the body
        carries no usable observation.
        """

        try:
            payload = self._request("/data/2.5/weather", {"q": city})
            snapshot = parse_current(city, payload)
        except (httpx.HTTPError, ValueError, TypeError, OverflowError, OSError) as exc:
            raise WeatherUnavailableError(city, str(exc)) from exc
        if snapshot.temperature is None and not snapshot.conditions:
            raise WeatherUnavailableError(city, "response carried no observation")
        return snapshot

    def get_forecast(self, city: str) -> List[ForecastDay]:
        """Return the multi-day forecast for a city, one entry per day."""

        try:
            payload = self._request("/data/2.5/forecast", {"q": city})
            return fold_forecast(payload)
        except (httpx.HTTPError, ValueError, TypeError, OverflowError, OSError) as exc:
            raise WeatherUnavailableError(city, str(exc)) from exc
