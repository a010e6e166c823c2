"""SQLAlchemy-backed persistence for settlement and cash-out."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, List

from sqlalchemy import ColumnElement, func, or_, select, update
from sqlalchemy.orm import Session, selectinload

from weatherbets.db.ledger import adjust_balance
from weatherbets.db.models import (
    CASHED_OUT,
    PENDING,
    Bet,
    CombinedBet,
    CombinedBetCategory,
    FinancialTransaction,
    Parlay,
    ParlayLeg,
)
from weatherbets.errors import SettlementConflictError
from weatherbets.settlement.types import (
    BET,
    CASHOUT,
    COMBINED_BET,
    PARLAY,
    PARTIAL_CASHOUT,
    LegSpec,
    SettlementOutcome,
    SettlementUnit,
)

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]


def _bet_unit(bet: Bet) -> SettlementUnit:
    return SettlementUnit(
        kind=BET,
        wager_id=bet.id,
        user_id=bet.user_id,
        stake=bet.stake,
        odds=float(bet.odds),
        currency_type=bet.currency_type,
        legs=[
            LegSpec(
                city=bet.city,
                prediction_type=bet.prediction_type,
                prediction_value=bet.prediction_value,
                odds=float(bet.odds),
                time_slot=bet.time_slot,
            )
        ],
        has_insurance=bool(bet.has_insurance),
        insurance_payout_percentage=float(bet.insurance_payout_percentage or 0.0),
        created_at=bet.created_at,
        target_date=bet.target_date,
        expires_at=bet.expires_at,
    )


def _parlay_unit(parlay: Parlay) -> SettlementUnit:
    return SettlementUnit(
        kind=PARLAY,
        wager_id=parlay.id,
        user_id=parlay.user_id,
        stake=parlay.total_stake,
        odds=float(parlay.combined_odds),
        currency_type=parlay.currency_type,
        legs=[
            LegSpec(
                city=leg.city,
                prediction_type=leg.prediction_type,
                prediction_value=leg.prediction_value,
                odds=float(leg.odds),
                leg_id=leg.id,
                time_slot=leg.time_slot,
            )
            for leg in parlay.legs
        ],
        has_insurance=bool(parlay.has_insurance),
        insurance_payout_percentage=float(parlay.insurance_payout_percentage or 0.0),
        created_at=parlay.created_at,
        expires_at=parlay.expires_at,
    )


def _combined_unit(combined: CombinedBet) -> SettlementUnit:
    return SettlementUnit(
        kind=COMBINED_BET,
        wager_id=combined.id,
        user_id=combined.user_id,
        stake=combined.total_stake,
        odds=float(combined.combined_odds),
        currency_type=combined.currency_type,
        legs=[
            LegSpec(
                city=combined.city,
                prediction_type=category.prediction_type,
                prediction_value=category.prediction_value,
                odds=float(category.odds),
                leg_id=category.id,
                time_slot=category.time_slot,
            )
            for category in combined.categories
        ],
        has_insurance=bool(combined.has_insurance),
        insurance_payout_percentage=float(combined.insurance_payout_percentage or 0.0),
        created_at=combined.created_at,
        target_date=combined.target_date,
        expires_at=combined.expires_at,
    )


@dataclass(frozen=True)
class WagerShape:
    """How one wager table is read and written."""

    kind: str
    model: Any
    leg_model: Any | None
    legs_attr: str | None
    stake_attr: str
    due_clause: Callable[[datetime], ColumnElement[bool]]
    to_unit: Callable[[Any], SettlementUnit]


SHAPES: dict[str, WagerShape] = {
    BET: WagerShape(
        kind=BET,
        model=Bet,
        leg_model=None,
        legs_attr=None,
        stake_attr="stake",
        due_clause=lambda now: or_(Bet.target_date <= now, Bet.expires_at <= now),
        to_unit=_bet_unit,
    ),
    PARLAY: WagerShape(
        kind=PARLAY,
        model=Parlay,
        leg_model=ParlayLeg,
        legs_attr="legs",
        stake_attr="total_stake",
        due_clause=lambda now: Parlay.expires_at <= now,
        to_unit=_parlay_unit,
    ),
    COMBINED_BET: WagerShape(
        kind=COMBINED_BET,
        model=CombinedBet,
        leg_model=CombinedBetCategory,
        legs_attr="categories",
        stake_attr="total_stake",
        due_clause=lambda now: CombinedBet.target_date <= now,
        to_unit=_combined_unit,
    ),
}


def _shape(kind: str) -> WagerShape:
    try:
        return SHAPES[kind]
    except KeyError as exc:
        raise ValueError(f"Unknown wager kind '{kind}'") from exc


class SqlSettlementStore:
    """Reads due wagers and commits outcomes with compare-and-set semantics."""

    def __init__(self, session_factory: SessionFactory | None = None) -> None:
        if session_factory is None:
            from weatherbets.db.database import SessionLocal

            session_factory = SessionLocal
        self._session_factory = session_factory

    def _pending_select(self, shape: WagerShape):
        model = shape.model
        stmt = select(model).where(model.result == PENDING, model.cashed_out_at.is_(None))
        if shape.legs_attr:
            stmt = stmt.options(selectinload(getattr(model, shape.legs_attr)))
        return stmt

    def due_units(self, kind: str, now: datetime) -> List[SettlementUnit]:
        shape = _shape(kind)
        stmt = self._pending_select(shape).where(shape.due_clause(now)).order_by(shape.model.id)
        with self._session_factory() as session:
            return [shape.to_unit(row) for row in session.scalars(stmt)]

    def get_pending_unit(self, kind: str, wager_id: int) -> SettlementUnit | None:
        shape = _shape(kind)
        stmt = self._pending_select(shape).where(shape.model.id == wager_id)
        with self._session_factory() as session:
            row = session.scalars(stmt).first()
            return shape.to_unit(row) if row is not None else None

    def pending_counts(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        with self._session_factory() as session:
            for kind, shape in SHAPES.items():
                model = shape.model
                stmt = select(func.count(model.id)).where(model.result == PENDING, model.cashed_out_at.is_(None))
                counts[kind] = int(session.scalar(stmt) or 0)
        return counts

    def _claim(
        self, session: Session, shape: WagerShape, wager_id: int, *conditions: ColumnElement[bool], **values: Any
    ) -> None:
        model = shape.model
        stmt = (
            update(model)
            .where(model.id == wager_id, model.result == PENDING, model.cashed_out_at.is_(None), *conditions)
            .values(**values)
        )
        if session.execute(stmt).rowcount != 1:
            raise SettlementConflictError(f"{shape.kind} {wager_id} changed or is no longer pending")

    def commit(self, outcome: SettlementOutcome, now: datetime) -> None:
        """Write result, leg results and payout in one transaction."""

        unit = outcome.unit
        shape = _shape(unit.kind)
        with self._session_factory() as session, session.begin():
            self._claim(session, shape, unit.wager_id, result=outcome.result, settled_at=now)
            if shape.leg_model is not None:
                for leg_result in outcome.leg_results:
                    if leg_result.leg.leg_id is None:
                        continue
                    session.execute(
                        update(shape.leg_model)
                        .where(shape.leg_model.id == leg_result.leg.leg_id)
                        .values(result="win" if leg_result.won else "loss")
                    )
            if outcome.payout > 0 and outcome.transaction_type:
                adjust_balance(
                    session,
                    user_id=unit.user_id,
                    delta=outcome.payout,
                    transaction_type=outcome.transaction_type,
                    reference_id=unit.wager_id,
                    reference_type=unit.kind,
                    currency_type=unit.currency_type,
                    details={"stake": unit.stake, "odds": unit.odds, "result": outcome.result},
                )

    def cash_out(self, unit: SettlementUnit, amount: int, now: datetime) -> None:
        """Move a pending wager to ``cashed_out`` and credit ``amount``."""

        shape = _shape(unit.kind)
        with self._session_factory() as session, session.begin():
            self._claim(session, shape, unit.wager_id, result=CASHED_OUT, cashed_out_at=now, cashout_amount=amount)
            if amount > 0:
                adjust_balance(
                    session,
                    user_id=unit.user_id,
                    delta=amount,
                    transaction_type=CASHOUT,
                    reference_id=unit.wager_id,
                    reference_type=unit.kind,
                    currency_type=unit.currency_type,
                    details={"stake": unit.stake, "odds": unit.odds},
                )
        logger.info("Cashed out %s %s for %s", unit.kind, unit.wager_id, amount)

    def partial_cash_out(
        self, unit: SettlementUnit, amount: int, remaining_stake: int, percentage: int, now: datetime
    ) -> None:
        """Credit ``amount`` and shrink the stake; the wager stays pending.

        The claim also checks the stake the offer was computed from, so two
        partial cash-outs racing on the same wager cannot both apply.
        """

        shape = _shape(unit.kind)
        stake_column = getattr(shape.model, shape.stake_attr)
        with self._session_factory() as session, session.begin():
            self._claim(session, shape, unit.wager_id, stake_column == unit.stake, **{shape.stake_attr: remaining_stake})
            previous = session.scalar(
                select(func.count(FinancialTransaction.id)).where(
                    FinancialTransaction.reference_type == unit.kind,
                    FinancialTransaction.reference_id == unit.wager_id,
                    FinancialTransaction.transaction_type == PARTIAL_CASHOUT,
                )
            )
            adjust_balance(
                session,
                user_id=unit.user_id,
                delta=amount,
                transaction_type=PARTIAL_CASHOUT,
                reference_id=unit.wager_id,
                reference_type=unit.kind,
                currency_type=unit.currency_type,
                details={
                    "percentage": percentage,
                    "original_stake": unit.stake,
                    "remaining_stake": remaining_stake,
                    "cashed_out_amount": amount,
                },
                sequence=int(previous or 0) + 1,
            )
        logger.info(
            "Partly cashed out %s %s: %s%% for %s, stake %s -> %s",
            unit.kind,
            unit.wager_id,
            percentage,
            amount,
            unit.stake,
            remaining_stake,
        )
