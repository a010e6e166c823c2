"""In-app notification rows for settlement and cash-out outcomes."""

from __future__ import annotations

from collections.abc import Callable

from sqlalchemy.orm import Session

from weatherbets.db.models import REAL, Notification
from weatherbets.settlement.types import BET, COMBINED_BET, PARLAY, SettlementOutcome, SettlementUnit

_LABELS = {BET: "Bet", PARLAY: "Parlay", COMBINED_BET: "Combined bet"}


def format_amount(amount: int, currency_type: str) -> str:
    """Points for the virtual ledger, Rands for the real one (stored in cents)."""

    if currency_type == REAL:
        return f"R{amount / 100:.2f}"
    return f"{amount} points"


class NotificationService:
    """Write settlement notifications for the wager's owner."""

    def __init__(self, session_factory: Callable[[], Session] | None = None) -> None:
        if session_factory is None:
            from weatherbets.db.database import SessionLocal

            session_factory = SessionLocal
        self._session_factory = session_factory

    @staticmethod
    def _describe(unit: SettlementUnit) -> str:
        if unit.kind == BET:
            leg = unit.legs[0]
            return f"{leg.prediction_type} {leg.prediction_value} in {leg.city}"
        return f"{len(unit.legs)}-leg {_LABELS.get(unit.kind, unit.kind).lower()}"

    def format_outcome(self, outcome: SettlementOutcome) -> tuple[str, str, str]:
        """Return ``(title, message, type)`` for a settled wager."""

        unit = outcome.unit
        label = _LABELS.get(unit.kind, unit.kind)
        subject = self._describe(unit)
        amount = format_amount(outcome.payout, unit.currency_type)
        if outcome.won:
            return f"{label} won!", f"Your {subject} won. You received {amount}.", "bet_won"
        if outcome.payout > 0:
            return (
                f"{label} lost (insured)",
                f"Your {subject} lost. Insurance paid back {amount}.",
                "bet_lost",
            )
        return f"{label} lost", f"Your {subject} lost.", "bet_lost"

    def _write(self, user_id: int, title: str, message: str, kind: str, related_id: int, related_type: str) -> None:
        with self._session_factory() as session, session.begin():
            session.add(
                Notification(
                    user_id=user_id,
                    title=title,
                    message=message,
                    type=kind,
                    related_id=related_id,
                    related_type=related_type,
                )
            )

    def notify_settlement(self, outcome: SettlementOutcome) -> None:
        title, message, kind = self.format_outcome(outcome)
        unit = outcome.unit
        self._write(unit.user_id, title, message, kind, unit.wager_id, unit.kind)

    def notify_cash_out(self, unit: SettlementUnit, amount: int) -> None:
        label = _LABELS.get(unit.kind, unit.kind)
        message = f"Your {self._describe(unit)} was cashed out for {format_amount(amount, unit.currency_type)}."
        self._write(unit.user_id, f"{label} cashed out", message, "cashout", unit.wager_id, unit.kind)

    def notify_partial_cash_out(self, unit: SettlementUnit, amount: int, remaining_stake: int) -> None:
        label = _LABELS.get(unit.kind, unit.kind)
        message = (
            f"You cashed out {format_amount(amount, unit.currency_type)} from your {self._describe(unit)}. "
            f"{format_amount(remaining_stake, unit.currency_type)} is still riding."
        )
        self._write(unit.user_id, f"{label} partly cashed out", message, "partial_cashout", unit.wager_id, unit.kind)
