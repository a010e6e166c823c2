"""Scheduling entry points."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict

from weatherbets.data.openweather_client import OpenWeatherClient
from weatherbets.data.weather_cache import FetchFn, WeatherCache
from weatherbets.notifications.service import NotificationService
from weatherbets.settlement.accuracy import AccuracyRecorder
from weatherbets.settlement.engine import SettlementEngine
from weatherbets.settlement.repository import SqlSettlementStore
from weatherbets.settlement.types import SettlementStore

logger = logging.getLogger(__name__)


def run_settlement_job(
    now: datetime | None = None,
    store: SettlementStore | None = None,
    fetch: FetchFn | None = None,
    notifier: NotificationService | None = None,
    accuracy: AccuracyRecorder | None = None,
) -> Dict[str, Any]:
    """Settle every due wager once: bets, then parlays, then combined bets.

    Safe to run repeatedly or concurrently; a wager leaves pending at most once.
    """

    client: OpenWeatherClient | None = None
    if fetch is None:
        client = OpenWeatherClient()
        fetch = client.get_current
    if store is None:
        store = SqlSettlementStore()
        notifier = notifier or NotificationService()
        accuracy = accuracy or AccuracyRecorder()
    try:
        engine = SettlementEngine(store, WeatherCache(fetch), notifier=notifier, accuracy=accuracy, now=now)
        summary = engine.run()
    finally:
        if client is not None:
            client.close()
    return summary.to_dict()


def main() -> None:  # pragma: no cover - CLI convenience
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    from weatherbets.db.database import init_db

    init_db()
    summary = run_settlement_job()
    logger.info("Settlement summary: %s", summary)


if __name__ == "__main__":  # pragma: no cover
    main()
