"""Per-run weather memo used by settlement."""

from __future__ import annotations

import logging
from collections.abc import Callable

from weatherbets.data.schemas import WeatherSnapshot
from weatherbets.errors import WeatherUnavailableError

logger = logging.getLogger(__name__)

FetchFn = Callable[[str], WeatherSnapshot]


class WeatherCache:
    """Lazily fetch and memoize one snapshot per city for a single settlement run.

    Failures are memoized as well: a city whose fetch failed is not retried in
    the same run, its wagers are deferred to the next run instead.
    """

    def __init__(self, fetch: FetchFn) -> None:
        self._fetch = fetch
        self._snapshots: dict[str, WeatherSnapshot | None] = {}
        self.calls = 0

    @staticmethod
    def _key(city: str) -> str:
        return " ".join(city.split()).casefold()

    def get(self, city: str) -> WeatherSnapshot | None:
        key = self._key(city)
        if key in self._snapshots:
            return self._snapshots[key]
        self.calls += 1
        snapshot: WeatherSnapshot | None
        try:
            snapshot = self._fetch(city)
        except WeatherUnavailableError as exc:
            logger.warning("Weather fetch failed for %s: %s", city, exc.reason or exc)
            snapshot = None
        except Exception:
            logger.exception("Unexpected error fetching weather for %s", city)
            snapshot = None
        self._snapshots[key] = snapshot
        return snapshot
