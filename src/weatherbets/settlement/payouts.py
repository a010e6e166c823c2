"""Payout arithmetic for settled wagers."""

from __future__ import annotations

import math

from weatherbets.settlement.predictions import round_half_up
from weatherbets.settlement.types import BET_WIN, INSURANCE_PAYOUT, SettlementUnit


def win_payout(stake: int, odds: float) -> int:
    return round_half_up(stake * odds)


def insurance_payout(stake: int, payout_fraction: float) -> int:
    return max(math.floor(stake * payout_fraction), 0)


def insurance_cost(stake: int, cost_percentage: float) -> int:
    return math.floor(stake * cost_percentage / 100)


def compute_payout(unit: SettlementUnit, won: bool) -> tuple[int, str | None]:
    """Return ``(amount, transaction_type)``; insurance only ever pays on a loss."""

    if won:
        return win_payout(unit.stake, unit.odds), BET_WIN
    if unit.has_insurance and unit.insurance_payout_percentage > 0:
        amount = insurance_payout(unit.stake, unit.insurance_payout_percentage)
        return amount, INSURANCE_PAYOUT if amount > 0 else None
    return 0, None
