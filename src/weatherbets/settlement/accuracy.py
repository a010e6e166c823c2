"""Predicted-versus-observed scoring written to ``weather_accuracy_log``."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from weatherbets.data.schemas import WeatherSnapshot
from weatherbets.db.models import WeatherAccuracyLog
from weatherbets.settlement import predictions as p
from weatherbets.settlement.types import LegSpec, SettlementUnit

logger = logging.getLogger(__name__)

# Points lost per unit the observation falls outside the predicted range.
PENALTY_PER_UNIT = {
    p.TEMPERATURE: 10.0,
    p.RAINFALL: 5.0,
    p.WIND: 3.0,
}


@dataclass
class AccuracyScore:
    category: str
    score: float
    actual_value: str
    details: dict[str, Any] = field(default_factory=dict)


def _format(value: float) -> str:
    return f"{value:g}"


def score_prediction(kind: str, predicted_value: str, snapshot: WeatherSnapshot) -> AccuracyScore | None:
    """Score 0-100 for how close the prediction came; None when it cannot be scored."""

    category = p.normalize_kind(kind)
    binary = p.parse_binary(predicted_value)
    if binary is not None:
        observed = p.observed_occurrence(category, snapshot)
        if observed is None:
            return None
        return AccuracyScore(
            category=category,
            score=100.0 if observed == binary else 0.0,
            actual_value="yes" if observed else "no",
            details={"predicted": binary, "observed": observed, "conditions": snapshot.conditions},
        )

    penalty = PENALTY_PER_UNIT.get(category)
    band = p.parse_band(predicted_value)
    if penalty is None or band is None:
        return None
    actual = p.observed_value(category, snapshot)
    if actual is None:
        return None
    distance = band.distance(actual)
    return AccuracyScore(
        category=category,
        score=max(0.0, 100.0 - distance * penalty),
        actual_value=_format(actual),
        details={
            "predicted_range": {"min": band.low, "max": None if band.high == float("inf") else band.high},
            "actual": actual,
            "distance": distance,
        },
    )


class AccuracyRecorder:
    """Insert one accuracy row per scoreable leg."""

    def __init__(self, session_factory: Callable[[], Session] | None = None) -> None:
        if session_factory is None:
            from weatherbets.db.database import SessionLocal

            session_factory = SessionLocal
        self._session_factory = session_factory

    def record(self, unit: SettlementUnit, leg: LegSpec, snapshot: WeatherSnapshot, now: datetime) -> bool:
        scored = score_prediction(leg.prediction_type, leg.prediction_value, snapshot)
        if scored is None:
            return False
        with self._session_factory() as session, session.begin():
            session.add(
                WeatherAccuracyLog(
                    city=leg.city,
                    prediction_date=unit.created_at or now,
                    target_date=unit.target_date or unit.expires_at or now,
                    category=scored.category,
                    predicted_value=leg.prediction_value,
                    actual_value=scored.actual_value,
                    accuracy_score=scored.score,
                    details=scored.details,
                )
            )
        logger.debug("Logged %s accuracy %.0f for %s", scored.category, scored.score, leg.city)
        return True
