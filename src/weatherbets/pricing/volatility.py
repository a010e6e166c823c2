"""Forecast volatility from historical accuracy logs.

Cities and categories whose forecasts have been unreliable pay better odds.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta

import pandas as pd
from sqlalchemy import select

from weatherbets.db.database import get_session
from weatherbets.db.models import WeatherAccuracyLog, utcnow
from weatherbets.pricing.policy import PricingPolicy

SUMMARY_COLUMNS = ["city", "category", "month", "total_predictions", "avg_accuracy", "min_accuracy", "max_accuracy"]
NO_DATA_LABEL = "Stable (No Data)"


@dataclass
class VolatilityData:
    city: str
    category: str
    avg_accuracy: float
    total_predictions: int
    multiplier: float
    label: str

    @property
    def bonus_percentage(self) -> int:
        return round((self.multiplier - 1) * 100)

    @property
    def has_data(self) -> bool:
        return self.label != NO_DATA_LABEL


def _accuracy_dataframe(city: str, category: str, since: datetime) -> pd.DataFrame:
    stmt = select(WeatherAccuracyLog).where(
        WeatherAccuracyLog.city == city,
        WeatherAccuracyLog.category == category,
        WeatherAccuracyLog.target_date >= since,
    )
    with get_session() as session:
        rows = [
            {
                "city": log.city,
                "category": log.category,
                "target_date": log.target_date,
                "accuracy_score": log.accuracy_score,
            }
            for log in session.scalars(stmt)
        ]
    return pd.DataFrame(rows, columns=["city", "category", "target_date", "accuracy_score"])


def monthly_accuracy_summary(df: pd.DataFrame) -> pd.DataFrame:
    """Group accuracy rows by city, category and calendar month, newest month first."""

    if df.empty:
        return pd.DataFrame(columns=SUMMARY_COLUMNS)
    df = df.assign(month=pd.to_datetime(df["target_date"]).dt.to_period("M").dt.to_timestamp())
    summary = (
        df.groupby(["city", "category", "month"])["accuracy_score"]
        .agg(total_predictions="count", avg_accuracy="mean", min_accuracy="min", max_accuracy="max")
        .reset_index()
    )
    return summary.sort_values("month", ascending=False).reset_index(drop=True)[SUMMARY_COLUMNS]


def weighted_accuracy(summary: pd.DataFrame, recency_weight: float) -> tuple[float, int]:
    """Most recent month carries ``recency_weight``; older months share the rest."""

    if summary.empty:
        return 0.0, 0
    months = len(summary)
    older = (1 - recency_weight) / max(months - 1, 1)
    weights = [recency_weight] + [older] * (months - 1)
    accuracies = summary["avg_accuracy"].fillna(0).tolist()
    total_weight = sum(weights)
    average = sum(a * w for a, w in zip(accuracies, weights)) / total_weight if total_weight else 0.0
    return round(average, 2), int(summary["total_predictions"].sum())


def volatility_multiplier(avg_accuracy: float, policy: PricingPolicy) -> float:
    """1.0 at or above the accuracy threshold, rising to ``1 + max_volatility_bonus`` at 0%."""

    threshold = policy.base_accuracy_threshold
    if avg_accuracy >= threshold:
        return 1.0
    deficit = min((threshold - avg_accuracy) / threshold, 1.0)
    return 1.0 + math.pow(deficit, policy.volatility_exponent) * policy.max_volatility_bonus


def volatility_label(multiplier: float) -> str:
    if multiplier >= 1.35:
        return "Very Volatile"
    if multiplier >= 1.25:
        return "High Volatility"
    if multiplier >= 1.15:
        return "Moderate Volatility"
    if multiplier >= 1.05:
        return "Slight Volatility"
    return "Stable"


def volatility_from_summary(city: str, category: str, summary: pd.DataFrame, policy: PricingPolicy) -> VolatilityData:
    months = summary.head(policy.volatility_months)
    avg_accuracy, total = weighted_accuracy(months, policy.volatility_recency_weight)
    if total < policy.volatility_min_data_points:
        return VolatilityData(
            city=city,
            category=category,
            avg_accuracy=policy.base_accuracy_threshold,
            total_predictions=total,
            multiplier=1.0,
            label=NO_DATA_LABEL,
        )
    multiplier = volatility_multiplier(avg_accuracy, policy)
    return VolatilityData(
        city=city,
        category=category,
        avg_accuracy=avg_accuracy,
        total_predictions=total,
        multiplier=multiplier,
        label=volatility_label(multiplier),
    )


def get_volatility(
    city: str,
    category: str,
    policy: PricingPolicy,
    now: datetime | None = None,
) -> VolatilityData:
    now = now or utcnow()
    since = now - timedelta(days=31 * policy.volatility_months)
    summary = monthly_accuracy_summary(_accuracy_dataframe(city, category, since))
    return volatility_from_summary(city, category, summary, policy)
