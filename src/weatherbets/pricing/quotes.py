"""Odds quotes for new legs and cash-out quotes/execution for pending wagers."""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Protocol

from weatherbets.data.schemas import ForecastDay, WeatherSnapshot
from weatherbets.data.weather_cache import WeatherCache
from weatherbets.db.models import utcnow
from weatherbets.errors import CashOutNotAllowedError
from weatherbets.notifications.service import NotificationService
from weatherbets.pricing.cashout import CashOutOffer, value_cash_out
from weatherbets.pricing.odds import PricedOdds, combined_odds, price_leg
from weatherbets.pricing.policy import PricingPolicy
from weatherbets.pricing.time_slots import multi_slot_multiplier
from weatherbets.pricing.volatility import VolatilityData, get_volatility
from weatherbets.settlement import predictions as p
from weatherbets.settlement.payouts import insurance_cost, insurance_payout
from weatherbets.settlement.types import SettlementUnit

logger = logging.getLogger(__name__)

ForecastFn = Callable[[str], List[ForecastDay]]
CurrentFn = Callable[[str], WeatherSnapshot]
VolatilityFn = Callable[[str, str, PricingPolicy], VolatilityData]


class CashOutStore(Protocol):
    def get_pending_unit(self, kind: str, wager_id: int) -> SettlementUnit | None: ...

    def cash_out(self, unit: SettlementUnit, amount: int, now: datetime) -> None: ...

    def partial_cash_out(
        self, unit: SettlementUnit, amount: int, remaining_stake: int, percentage: int, now: datetime
    ) -> None: ...


@dataclass
class LegQuoteRequest:
    city: str
    prediction_type: str
    prediction_value: str
    time_slots: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class InsuranceQuote:
    """What insuring a stake costs up front and returns on a loss."""

    cost: int
    payout_on_loss: int
    payout_fraction: float


def quote_insurance(stake: int, policy: PricingPolicy) -> InsuranceQuote:
    fraction = policy.insurance_payout_percentage / 100
    return InsuranceQuote(
        cost=insurance_cost(stake, policy.insurance_cost_percentage),
        payout_on_loss=insurance_payout(stake, fraction),
        payout_fraction=fraction,
    )


@dataclass
class OddsQuote:
    legs: list[PricedOdds]
    volatility: list[VolatilityData]
    days_ahead: int
    insurance: InsuranceQuote | None = None

    @property
    def combined(self) -> float:
        return round(combined_odds(leg.odds for leg in self.legs), 2)


@dataclass
class PartialCashOut:
    offer: CashOutOffer
    percentage: int
    amount: int
    remaining_stake: int


def days_until(target: datetime, now: datetime) -> int:
    return max((target.date() - now.date()).days, 0)


class OddsQuoter:
    """Price legs for a target day from the live forecast and accuracy history."""

    def __init__(
        self,
        fetch_forecast: ForecastFn,
        policy: PricingPolicy | None = None,
        volatility: VolatilityFn | None = None,
    ) -> None:
        self.fetch_forecast = fetch_forecast
        self.policy = policy or PricingPolicy.from_settings()
        self.volatility = volatility or get_volatility

    def quote(
        self,
        legs: list[LegQuoteRequest],
        target_date: datetime,
        now: datetime | None = None,
        stake: int | None = None,
    ) -> OddsQuote:
        """Price every leg; with a ``stake``, also quote insurance for it."""

        now = now or utcnow()
        days_ahead = days_until(target_date, now)
        forecasts: dict[str, list[ForecastDay]] = {}
        priced: list[PricedOdds] = []
        volatility: list[VolatilityData] = []
        for leg in legs:
            key = leg.city.casefold()
            if key not in forecasts:
                forecasts[key] = self.fetch_forecast(leg.city)
            category = p.normalize_kind(leg.prediction_type)
            vol = self.volatility(leg.city, category, self.policy)
            single_slot = leg.time_slots[0] if len(leg.time_slots) == 1 else None
            quote = price_leg(
                category,
                leg.prediction_value,
                forecasts[key],
                days_ahead,
                self.policy,
                time_slot=single_slot,
                volatility=vol.multiplier,
            )
            if len(leg.time_slots) > 1:
                quote.slot_multiplier = multi_slot_multiplier(
                    category, leg.time_slots, self.policy.combo_bonus_per_slot
                )
            priced.append(quote)
            volatility.append(vol)
        insurance = quote_insurance(stake, self.policy) if stake else None
        return OddsQuote(legs=priced, volatility=volatility, days_ahead=days_ahead, insurance=insurance)


class CashOutService:
    """Quote and execute cash-outs against the live weather."""

    def __init__(
        self,
        store: CashOutStore,
        fetch_current: CurrentFn,
        policy: PricingPolicy | None = None,
        notifier: NotificationService | None = None,
    ) -> None:
        self.store = store
        self.fetch_current = fetch_current
        self.policy = policy or PricingPolicy.from_settings()
        self.notifier = notifier

    def _unit(self, kind: str, wager_id: int) -> SettlementUnit:
        unit = self.store.get_pending_unit(kind, wager_id)
        if unit is None:
            raise LookupError(f"No pending {kind} {wager_id}")
        return unit

    def _snapshots(self, unit: SettlementUnit) -> dict[str, WeatherSnapshot | None]:
        cache = WeatherCache(self.fetch_current)
        return {leg.city: cache.get(leg.city) for leg in unit.legs}

    def quote(self, kind: str, wager_id: int, now: datetime | None = None) -> CashOutOffer:
        now = now or utcnow()
        unit = self._unit(kind, wager_id)
        return value_cash_out(unit, self._snapshots(unit), now, self.policy)

    def cash_out(self, kind: str, wager_id: int, now: datetime | None = None) -> CashOutOffer:
        """Credit the current offer and move the wager to ``cashed_out``.

        Raises ``LookupError`` when the wager is not pending,
        ``CashOutNotAllowedError`` when it is too close to expiry or worth
        nothing, and ``SettlementConflictError`` when settlement got there first.
        """

        now = now or utcnow()
        unit = self._unit(kind, wager_id)
        snapshots = self._snapshots(unit)
        offer = value_cash_out(unit, snapshots, now, self.policy)
        if not offer.eligible:
            raise CashOutNotAllowedError(
                f"{kind} {wager_id} is within {self.policy.cashout_min_hours_before_expiry}h of expiry"
            )
        if offer.amount <= 0:
            raise CashOutNotAllowedError(f"{kind} {wager_id} has no cash-out value")
        self.store.cash_out(unit, offer.amount, now)
        if self.notifier is not None:
            try:
                self.notifier.notify_cash_out(unit, offer.amount)
            except Exception:
                logger.exception("Cash-out notification failed for %s %s", kind, wager_id)
        return offer


    def partial_cash_out(
        self, kind: str, wager_id: int, percentage: int, now: datetime | None = None
    ) -> PartialCashOut:
        """Cash out ``percentage`` of the current offer and keep the rest riding.

        The credited amount is ``floor(offer * pct / 100)`` and the stake left on
        the wager is ``floor(stake * (100 - pct) / 100)``; odds are unchanged.
        At 100% this is a full cash-out.
        """

        if not 0 < percentage <= 100:
            raise ValueError(f"Cash-out percentage must be between 1 and 100, got {percentage}")
        if percentage == 100:
            offer = self.cash_out(kind, wager_id, now)
            return PartialCashOut(offer=offer, percentage=100, amount=offer.amount, remaining_stake=0)

        now = now or utcnow()
        unit = self._unit(kind, wager_id)
        offer = value_cash_out(unit, self._snapshots(unit), now, self.policy)
        if not offer.eligible:
            raise CashOutNotAllowedError(
                f"{kind} {wager_id} is within {self.policy.cashout_min_hours_before_expiry}h of expiry"
            )
        amount = math.floor(offer.amount * percentage / 100)
        remaining = math.floor(unit.stake * (100 - percentage) / 100)
        if amount <= 0:
            raise CashOutNotAllowedError(f"{percentage}% of {kind} {wager_id} has no cash-out value")
        if remaining <= 0:
            raise CashOutNotAllowedError(f"{percentage}% of {kind} {wager_id} would leave no stake riding")
        self.store.partial_cash_out(unit, amount, remaining, percentage, now)
        if self.notifier is not None:
            try:
                self.notifier.notify_partial_cash_out(unit, amount, remaining)
            except Exception:
                logger.exception("Partial cash-out notification failed for %s %s", kind, wager_id)
        return PartialCashOut(offer=offer, percentage=percentage, amount=amount, remaining_stake=remaining)
