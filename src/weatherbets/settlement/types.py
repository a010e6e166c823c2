"""Dataclasses shared by the settlement engine and its persistence layer."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import List, Protocol

BET = "bet"
PARLAY = "parlay"
COMBINED_BET = "combined_bet"

WAGER_KINDS: tuple[str, ...] = (BET, PARLAY, COMBINED_BET)

BET_WIN = "bet_win"
INSURANCE_PAYOUT = "insurance_payout"
CASHOUT = "cashout"
PARTIAL_CASHOUT = "partial_cashout"


@dataclass
class LegSpec:
    """One prediction to judge. ``leg_id`` is None when the wager itself is the only leg."""

    city: str
    prediction_type: str
    prediction_value: str
    odds: float
    leg_id: int | None = None
    time_slot: str | None = None


@dataclass
class SettlementUnit:
    """A due wager of any shape, reduced to N>=1 legs plus money terms."""

    kind: str
    wager_id: int
    user_id: int
    stake: int
    odds: float
    currency_type: str
    legs: List[LegSpec]
    has_insurance: bool = False
    insurance_payout_percentage: float = 0.0
    created_at: datetime | None = None
    target_date: datetime | None = None
    expires_at: datetime | None = None

    @property
    def is_multi_leg(self) -> bool:
        return self.kind != BET


@dataclass
class LegResult:
    leg: LegSpec
    won: bool


@dataclass
class SettlementOutcome:
    unit: SettlementUnit
    won: bool
    leg_results: List[LegResult]
    payout: int
    transaction_type: str | None

    @property
    def result(self) -> str:
        return "win" if self.won else "loss"


@dataclass
class RunSummary:
    resolved_bets: int = 0
    resolved_parlays: int = 0
    resolved_combined_bets: int = 0
    skipped: int = 0
    conflicts: int = 0
    failed: int = 0
    weather_calls: int = 0
    details: dict[str, str] = field(default_factory=dict)

    def record_resolved(self, kind: str) -> None:
        if kind == BET:
            self.resolved_bets += 1
        elif kind == PARLAY:
            self.resolved_parlays += 1
        else:
            self.resolved_combined_bets += 1

    @property
    def resolved(self) -> int:
        return self.resolved_bets + self.resolved_parlays + self.resolved_combined_bets

    def to_dict(self) -> dict:
        return asdict(self)


class SettlementStore(Protocol):
    """Persistence boundary used by the engine."""

    def due_units(self, kind: str, now: datetime) -> List[SettlementUnit]: ...

    def commit(self, outcome: SettlementOutcome, now: datetime) -> None: ...
