"""Atomic balance adjustment with a ledger entry."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from weatherbets.db.models import REAL, FinancialTransaction, User
from weatherbets.errors import BalanceUpdateError

logger = logging.getLogger(__name__)


def balance_column(currency_type: str):
    return User.balance_cents if currency_type == REAL else User.points


def adjust_balance(
    session: Session,
    user_id: int,
    delta: int,
    transaction_type: str,
    reference_id: int | None,
    reference_type: str | None,
    currency_type: str,
    details: dict[str, Any] | None = None,
    sequence: int = 0,
) -> FinancialTransaction:
    """Apply ``delta`` to the user's balance in the caller's transaction.

    ``(reference_type, reference_id, transaction_type, sequence)`` is the
    idempotency key: when a ledger row already exists for it, nothing is changed
    and that row is returned.
    """

    if reference_id is not None:
        existing = session.scalars(
            select(FinancialTransaction).where(
                FinancialTransaction.reference_type == reference_type,
                FinancialTransaction.reference_id == reference_id,
                FinancialTransaction.transaction_type == transaction_type,
                FinancialTransaction.sequence == sequence,
            )
        ).first()
        if existing is not None:
            logger.info(
                "Ledger entry %s for %s %s already applied; skipping", transaction_type, reference_type, reference_id
            )
            return existing

    column = balance_column(currency_type)
    before = session.execute(select(column).where(User.id == user_id).with_for_update()).scalar_one_or_none()
    if before is None:
        raise BalanceUpdateError(f"User {user_id} not found")
    after = before + delta
    if after < 0:
        raise BalanceUpdateError(f"Insufficient balance for user {user_id}: {before} + {delta}")

    session.execute(update(User).where(User.id == user_id).values({column.key: column + delta}))
    entry = FinancialTransaction(
        user_id=user_id,
        transaction_type=transaction_type,
        currency_type=currency_type,
        amount=delta,
        balance_before=before,
        balance_after=after,
        reference_id=reference_id,
        reference_type=reference_type,
        sequence=sequence,
        details=details or {},
    )
    session.add(entry)
    try:
        session.flush()
    except IntegrityError as exc:
        raise BalanceUpdateError(
            f"Concurrent ledger write for {reference_type} {reference_id} ({transaction_type})"
        ) from exc
    return entry
