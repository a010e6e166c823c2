"""Settlement of due wagers: single bets, parlays and combined bets."""

from __future__ import annotations

import logging
from datetime import datetime

from weatherbets.data.schemas import WeatherSnapshot
from weatherbets.data.weather_cache import WeatherCache
from weatherbets.db.models import utcnow
from weatherbets.errors import BalanceUpdateError, SettlementConflictError
from weatherbets.notifications.service import NotificationService
from weatherbets.settlement.accuracy import AccuracyRecorder
from weatherbets.settlement.evaluator import evaluate
from weatherbets.settlement.payouts import compute_payout
from weatherbets.settlement.types import (
    WAGER_KINDS,
    LegResult,
    RunSummary,
    SettlementOutcome,
    SettlementStore,
    SettlementUnit,
)

logger = logging.getLogger(__name__)


def settle_unit(unit: SettlementUnit, snapshots: dict[str, WeatherSnapshot]) -> SettlementOutcome:
    """Evaluate every leg and price the outcome. Pure; nothing is written."""

    leg_results = [
        LegResult(leg=leg, won=evaluate(leg.prediction_type, leg.prediction_value, snapshots[leg.city]))
        for leg in unit.legs
    ]
    won = bool(leg_results) and all(result.won for result in leg_results)
    payout, transaction_type = compute_payout(unit, won)
    return SettlementOutcome(
        unit=unit,
        won=won,
        leg_results=leg_results,
        payout=payout,
        transaction_type=transaction_type,
    )


class SettlementEngine:
    """One settlement run over every due wager.

    The weather cache is owned by the run: build a new engine (and cache) for
    each pass so observations are fresh.
    """

    def __init__(
        self,
        store: SettlementStore,
        weather: WeatherCache,
        notifier: NotificationService | None = None,
        accuracy: AccuracyRecorder | None = None,
        now: datetime | None = None,
    ) -> None:
        self.store = store
        self.weather = weather
        self.notifier = notifier
        self.accuracy = accuracy
        self.now = now or utcnow()

    def run(self) -> RunSummary:
        summary = RunSummary()
        for kind in WAGER_KINDS:
            self._run_pass(kind, summary)
        summary.weather_calls = self.weather.calls
        logger.info(
            "Settlement run finished: %s bets, %s parlays, %s combined bets resolved; %s skipped, %s conflicts, %s failed",
            summary.resolved_bets,
            summary.resolved_parlays,
            summary.resolved_combined_bets,
            summary.skipped,
            summary.conflicts,
            summary.failed,
        )
        return summary

    def _run_pass(self, kind: str, summary: RunSummary) -> None:
        units = self.store.due_units(kind, self.now)
        logger.info("Settling %s due %s wager(s)", len(units), kind)
        for unit in units:
            self._settle_one(unit, summary)

    def _snapshots(self, unit: SettlementUnit) -> dict[str, WeatherSnapshot] | None:
        snapshots: dict[str, WeatherSnapshot] = {}
        for leg in unit.legs:
            if leg.city in snapshots:
                continue
            snapshot = self.weather.get(leg.city)
            if snapshot is None:
                return None
            snapshots[leg.city] = snapshot
        return snapshots

    def _settle_one(self, unit: SettlementUnit, summary: RunSummary) -> None:
        key = f"{unit.kind}:{unit.wager_id}"
        if not unit.legs:
            logger.error("%s has no legs; leaving pending", key)
            summary.failed += 1
            summary.details[key] = "no legs"
            return

        snapshots = self._snapshots(unit)
        if snapshots is None:
            logger.warning("Weather unavailable for %s; deferring to next run", key)
            summary.skipped += 1
            summary.details[key] = "weather unavailable"
            return

        outcome = settle_unit(unit, snapshots)
        try:
            self.store.commit(outcome, self.now)
        except SettlementConflictError:
            logger.info("%s was settled or cashed out elsewhere; skipping", key)
            summary.conflicts += 1
            summary.details[key] = "conflict"
            return
        except BalanceUpdateError as exc:
            logger.error("Balance update failed for %s, left pending: %s", key, exc)
            summary.failed += 1
            summary.details[key] = "balance update failed"
            return
        except Exception:
            logger.exception("Settlement of %s failed; left pending", key)
            summary.failed += 1
            summary.details[key] = "error"
            return

        logger.info("Settled %s as %s, payout %s", key, outcome.result, outcome.payout)
        summary.record_resolved(unit.kind)
        summary.details[key] = outcome.result
        self._after_commit(outcome, snapshots)

    def _after_commit(self, outcome: SettlementOutcome, snapshots: dict[str, WeatherSnapshot]) -> None:
        if self.notifier is not None:
            try:
                self.notifier.notify_settlement(outcome)
            except Exception:
                logger.exception("Notification failed for %s %s", outcome.unit.kind, outcome.unit.wager_id)
        if self.accuracy is not None:
            for leg in outcome.unit.legs:
                try:
                    self.accuracy.record(outcome.unit, leg, snapshots[leg.city], self.now)
                except Exception:
                    logger.exception("Accuracy logging failed for %s in %s", leg.prediction_type, leg.city)
