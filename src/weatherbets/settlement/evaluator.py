"""Decide whether a single prediction won against an observed snapshot."""

from __future__ import annotations

import logging

from weatherbets.data.schemas import WeatherSnapshot
from weatherbets.settlement import predictions as p

logger = logging.getLogger(__name__)

RANGE_CATEGORIES = frozenset(
    {p.RAIN, p.RAINFALL, p.TEMPERATURE, p.WIND, p.HUMIDITY, p.PRESSURE, p.CLOUD_COVERAGE, p.DEW_POINT}
)
OCCURRENCE_CATEGORIES = frozenset({p.RAIN, p.RAINFALL, p.SNOW})


def evaluate(kind: str, predicted_value: str, snapshot: WeatherSnapshot) -> bool:
    """Return True when the prediction matches the observation.

    Never raises: unknown categories, unparseable values and missing
    observations all evaluate to a loss.
    """

    try:
        return _evaluate(kind, predicted_value, snapshot)
    except Exception:
        logger.exception("Evaluation failed for %s=%r; treating as loss", kind, predicted_value)
        return False


def _evaluate(kind: str, predicted_value: str, snapshot: WeatherSnapshot) -> bool:
    category = p.normalize_kind(kind)
    if category not in RANGE_CATEGORIES and category not in OCCURRENCE_CATEGORIES:
        logger.warning("Unrecognized prediction category %r; treating as loss", kind)
        return False

    binary = p.parse_binary(predicted_value)
    if binary is not None:
        if category not in OCCURRENCE_CATEGORIES:
            logger.warning("Yes/no prediction for numeric category %s; treating as loss", category)
            return False
        observed = p.observed_occurrence(category, snapshot)
        return observed is not None and observed == binary

    if category not in RANGE_CATEGORIES:
        logger.warning("Numeric prediction %r for %s is not supported; treating as loss", predicted_value, category)
        return False

    band = p.parse_band(predicted_value)
    if band is None:
        logger.warning("Unparseable prediction value %r for %s; treating as loss", predicted_value, category)
        return False

    actual = p.observed_value(category, snapshot)
    if actual is None:
        logger.warning("Snapshot for %s has no %s observation; treating as loss", snapshot.city, category)
        return False
    return band.contains(actual)
