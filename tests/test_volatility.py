"""Forecast volatility tests."""

from __future__ import annotations

import pandas as pd
import pytest

from weatherbets.pricing import volatility as vol
from weatherbets.pricing.policy import PricingPolicy

POLICY = PricingPolicy()


def _logs(rows: list[tuple[str, float]]) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {"city": "Durban", "category": "temperature", "target_date": pd.Timestamp(day), "accuracy_score": score}
            for day, score in rows
        ]
    )


def test_multiplier_curve() -> None:
    assert vol.volatility_multiplier(95, POLICY) == 1.0
    assert vol.volatility_multiplier(80, POLICY) == 1.0
    assert vol.volatility_multiplier(40, POLICY) == pytest.approx(1 + 0.5**0.7 * 0.4)
    assert vol.volatility_multiplier(0, POLICY) == pytest.approx(1.4)
    curve = [vol.volatility_multiplier(a, POLICY) for a in range(0, 101, 10)]
    assert curve == sorted(curve, reverse=True)


@pytest.mark.parametrize(
    ("multiplier", "label"),
    [(1.4, "Very Volatile"), (1.3, "High Volatility"), (1.2, "Moderate Volatility"), (1.06, "Slight Volatility"), (1.0, "Stable")],
)
def test_labels(multiplier: float, label: str) -> None:
    assert vol.volatility_label(multiplier) == label


def test_monthly_summary_groups_by_month_newest_first() -> None:
    summary = vol.monthly_accuracy_summary(
        _logs([("2025-01-03", 100), ("2025-01-20", 50), ("2025-02-11", 0)])
    )
    assert list(summary.columns) == vol.SUMMARY_COLUMNS
    assert summary["total_predictions"].tolist() == [1, 2]
    assert summary["avg_accuracy"].tolist() == [0.0, 75.0]
    assert summary.loc[1, "min_accuracy"] == 50
    assert summary.loc[1, "max_accuracy"] == 100


def test_empty_summary() -> None:
    summary = vol.monthly_accuracy_summary(pd.DataFrame(columns=["city", "category", "target_date", "accuracy_score"]))
    assert summary.empty
    assert vol.weighted_accuracy(summary, 0.7) == (0.0, 0)


def test_recent_month_weighted_most() -> None:
    summary = vol.monthly_accuracy_summary(
        _logs([("2025-01-03", 100), ("2025-01-20", 50), ("2025-02-11", 0)])
    )
    assert vol.weighted_accuracy(summary, 0.7) == (22.5, 3)


def test_too_few_predictions_means_no_bonus() -> None:
    summary = vol.monthly_accuracy_summary(_logs([("2025-02-01", 0), ("2025-02-02", 0)]))
    data = vol.volatility_from_summary("Durban", "temperature", summary, POLICY)
    assert data.multiplier == 1.0
    assert data.label == vol.NO_DATA_LABEL
    assert not data.has_data
    assert data.avg_accuracy == POLICY.base_accuracy_threshold


def test_get_volatility_reads_history(monkeypatch) -> None:
    rows = [(f"2025-05-{day:02d}", 40) for day in range(1, 7)]
    monkeypatch.setattr(vol, "_accuracy_dataframe", lambda city, category, since: _logs(rows))
    data = vol.get_volatility("Durban", "temperature", POLICY)
    assert data.total_predictions == 6
    assert data.avg_accuracy == pytest.approx(40.0)
    assert data.multiplier == pytest.approx(1 + 0.5**0.7 * 0.4)
    assert data.label == "Moderate Volatility"
    assert data.bonus_percentage == 25
    assert data.has_data
