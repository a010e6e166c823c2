"""Cash-out valuation and execution tests."""

from __future__ import annotations

import math
from datetime import timedelta

import pytest
from sqlalchemy import select

from conftest import NOW, FakeWeather
from weatherbets.data.schemas import WeatherSnapshot
from weatherbets.data.weather_cache import WeatherCache
from weatherbets.db.models import (
    CASHED_OUT,
    Bet,
    CombinedBet,
    CombinedBetCategory,
    FinancialTransaction,
    Notification,
    User,
)
from weatherbets.errors import CashOutNotAllowedError, SettlementConflictError
from weatherbets.notifications.service import NotificationService
from weatherbets.pricing import cashout
from weatherbets.pricing.policy import PricingPolicy
from weatherbets.pricing.quotes import CashOutService
from weatherbets.settlement.engine import SettlementEngine, settle_unit
from weatherbets.settlement.repository import SqlSettlementStore
from weatherbets.settlement.types import BET, COMBINED_BET, PARLAY, PARTIAL_CASHOUT, LegSpec, SettlementUnit

POLICY = PricingPolicy()


def _unit(
    legs: list[tuple[str, str, str]],
    kind: str = BET,
    stake: int = 1000,
    odds: float = 2.0,
    age_hours: float = 10,
    hours_left: float | None = 10,
) -> SettlementUnit:
    return SettlementUnit(
        kind=kind,
        wager_id=1,
        user_id=1,
        stake=stake,
        odds=odds,
        currency_type="virtual",
        legs=[LegSpec(city=city, prediction_type=t, prediction_value=v, odds=odds) for city, t, v in legs],
        created_at=NOW - timedelta(hours=age_hours),
        expires_at=None if hours_left is None else NOW + timedelta(hours=hours_left),
    )


def _snap(**fields) -> WeatherSnapshot:
    return WeatherSnapshot(city="Cape Town", **fields)


def test_time_fraction() -> None:
    assert cashout.time_fraction(NOW - timedelta(hours=2), NOW + timedelta(hours=2), NOW) == pytest.approx(0.5)
    assert cashout.time_fraction(NOW - timedelta(minutes=30), None, NOW) == pytest.approx(0.5)
    assert cashout.time_fraction(NOW - timedelta(hours=3), None, NOW) == 1.0
    assert cashout.time_fraction(NOW + timedelta(hours=1), NOW + timedelta(hours=2), NOW) == 0.0
    assert cashout.time_fraction(NOW - timedelta(hours=5), NOW - timedelta(hours=1), NOW) == 1.0


def test_forecast_alignment() -> None:
    assert cashout.forecast_alignment("rain", "yes", _snap(conditions=["light rain"])) == 1.0
    assert cashout.forecast_alignment("rain", "yes", _snap(conditions=["clear sky"])) == 0.0
    assert cashout.forecast_alignment("temperature", "18-22", _snap(temperature=20)) == 1.0
    assert cashout.forecast_alignment("temperature", "18-22", _snap(temperature=24)) == 0.5
    assert cashout.forecast_alignment("temperature", "18-22", _snap(temperature=35)) == 0.0
    assert cashout.forecast_alignment("temperature", "20", _snap(temperature=20)) == 1.0
    assert cashout.forecast_alignment("temperature", "20", _snap(temperature=21)) == 0.75
    assert cashout.forecast_alignment("temperature", "20", _snap(temperature=23)) == 0.25
    assert cashout.forecast_alignment("temperature", "foo", _snap(temperature=20)) == 0.0
    assert cashout.forecast_alignment("temperature", "18-22", None) == 0.0


def test_single_offer_breakdown() -> None:
    unit = _unit([("Cape Town", "temperature", "18-22")], age_hours=30, hours_left=10)
    offer = cashout.value_cash_out(unit, {"Cape Town": _snap(temperature=35)}, NOW, POLICY)
    assert offer.potential_win == 2000
    assert offer.amount == pytest.approx(1325, abs=1)
    assert offer.time_bonus == 26
    assert offer.weather_bonus == 0
    assert offer.eligible
    assert offer.reasoning.startswith("Fair cash-out value.")
    assert "Weather conditions uncertain" in offer.reasoning


def test_offer_capped_below_potential_win() -> None:
    unit = _unit([("Cape Town", "temperature", "18-22")], age_hours=100, hours_left=2)
    offer = cashout.value_cash_out(unit, {"Cape Town": _snap(temperature=20)}, NOW, POLICY)
    assert offer.percentage == 85
    assert offer.amount == pytest.approx(1700, abs=1)
    assert "Excellent" in offer.reasoning
    assert "strongly favors" in offer.reasoning


def test_offer_never_decreases_as_time_passes_with_favorable_weather() -> None:
    created = NOW - timedelta(hours=1)
    unit = _unit([("Cape Town", "rain", "yes")], age_hours=1, hours_left=47)
    favorable = {"Cape Town": _snap(conditions=["Rain"])}
    amounts = [
        cashout.value_cash_out(unit, favorable, created + timedelta(hours=h), POLICY).amount for h in range(0, 49, 4)
    ]
    assert amounts == sorted(amounts)
    assert all(0 <= a <= 2000 for a in amounts)


def test_multi_leg_uses_weakest_leg() -> None:
    unit = _unit(
        [("Cape Town", "rain", "yes"), ("Durban", "rain", "yes")],
        kind=PARLAY,
        age_hours=0,
        hours_left=10,
    )
    snapshots = {"Cape Town": _snap(conditions=["Rain"]), "Durban": _snap(conditions=["Clear"])}
    offer = cashout.value_cash_out(unit, snapshots, NOW, POLICY)
    assert offer.weather_bonus == 0
    assert offer.percentage == 30
    assert "Some legs looking favorable" in offer.reasoning

    both = {"Cape Town": _snap(conditions=["Rain"]), "Durban": _snap(conditions=["Rain"])}
    strong = cashout.value_cash_out(unit, both, NOW, POLICY)
    assert strong.weather_bonus == 15
    assert strong.percentage == 45
    assert "All legs looking strong" in strong.reasoning


def test_cash_out_window() -> None:
    assert not cashout.can_cash_out(_unit([("Cape Town", "rain", "yes")], hours_left=0.5), NOW, POLICY)
    assert cashout.can_cash_out(_unit([("Cape Town", "rain", "yes")], hours_left=2), NOW, POLICY)
    assert cashout.can_cash_out(_unit([("Cape Town", "rain", "yes")], hours_left=None), NOW, POLICY)


def _pending_bet(session_factory, user_id: int, hours_left: float, stake: int = 100, odds: float = 2.0) -> int:
    with session_factory() as session, session.begin():
        bet = Bet(
            user_id=user_id,
            city="Cape Town",
            prediction_type="rain",
            prediction_value="yes",
            stake=stake,
            odds=odds,
            created_at=NOW - timedelta(hours=5),
            expires_at=NOW + timedelta(hours=hours_left),
        )
        session.add(bet)
        session.flush()
        return bet.id


def test_cash_out_credits_offer_and_removes_from_settlement(session_factory, user_id, cape_town) -> None:
    bet_id = _pending_bet(session_factory, user_id, hours_left=5)
    store = SqlSettlementStore(session_factory)
    service = CashOutService(store, FakeWeather({"Cape Town": cape_town}), POLICY, NotificationService(session_factory))

    offer = service.cash_out(BET, bet_id, NOW)

    assert 0 < offer.amount <= offer.potential_win
    with session_factory() as session:
        bet = session.get(Bet, bet_id)
        assert bet.result == CASHED_OUT
        assert bet.cashout_amount == offer.amount
        assert bet.cashed_out_at == NOW
        entry = session.scalars(select(FinancialTransaction)).one()
        assert entry.transaction_type == "cashout"
        assert session.get(User, user_id).points == 1000 + offer.amount
        assert session.scalars(select(Notification)).one().type == "cashout"

    later = NOW + timedelta(hours=6)
    summary = SettlementEngine(store, WeatherCache(FakeWeather({"Cape Town": cape_town})), now=later).run()
    assert summary.resolved == 0
    with pytest.raises(LookupError):
        service.cash_out(BET, bet_id, later)


def test_cash_out_refused_close_to_expiry(session_factory, user_id, cape_town) -> None:
    bet_id = _pending_bet(session_factory, user_id, hours_left=0.5)
    service = CashOutService(SqlSettlementStore(session_factory), FakeWeather({"Cape Town": cape_town}), POLICY)

    assert service.quote(BET, bet_id, NOW).eligible is False
    with pytest.raises(CashOutNotAllowedError):
        service.cash_out(BET, bet_id, NOW)
    with session_factory() as session:
        assert session.get(Bet, bet_id).result == "pending"


def test_cash_out_loses_race_against_settlement(session_factory, user_id, cape_town) -> None:
    bet_id = _pending_bet(session_factory, user_id, hours_left=5)
    store = SqlSettlementStore(session_factory)
    unit = store.get_pending_unit(BET, bet_id)

    store.commit(settle_unit(unit, {"Cape Town": cape_town}), NOW)
    with pytest.raises(SettlementConflictError):
        store.cash_out(unit, 50, NOW)
    with session_factory() as session:
        assert session.get(User, user_id).points == 1200


def _service(session_factory, cape_town) -> CashOutService:
    return CashOutService(
        SqlSettlementStore(session_factory),
        FakeWeather({"Cape Town": cape_town}),
        POLICY,
        NotificationService(session_factory),
    )


def test_partial_cash_out_leaves_rest_of_stake_riding(session_factory, user_id, cape_town) -> None:
    bet_id = _pending_bet(session_factory, user_id, hours_left=5)
    service = _service(session_factory, cape_town)

    first = service.partial_cash_out(BET, bet_id, 40, NOW)

    assert first.remaining_stake == 60
    assert first.amount == math.floor(first.offer.amount * 40 / 100)
    assert first.amount > 0
    with session_factory() as session:
        bet = session.get(Bet, bet_id)
        assert (bet.stake, bet.result, bet.cashed_out_at) == (60, "pending", None)
        entry = session.scalars(select(FinancialTransaction)).one()
        assert entry.transaction_type == PARTIAL_CASHOUT
        assert entry.sequence == 1
        assert entry.details == {
            "percentage": 40,
            "original_stake": 100,
            "remaining_stake": 60,
            "cashed_out_amount": first.amount,
        }
        assert session.scalars(select(Notification)).one().type == "partial_cashout"

    second = service.partial_cash_out(BET, bet_id, 50, NOW)
    assert second.remaining_stake == 30
    with session_factory() as session:
        entries = session.scalars(select(FinancialTransaction).order_by(FinancialTransaction.id)).all()
        assert [e.sequence for e in entries] == [1, 2]
        assert session.get(User, user_id).points == 1000 + first.amount + second.amount

    later = NOW + timedelta(hours=6)
    store = SqlSettlementStore(session_factory)
    summary = SettlementEngine(store, WeatherCache(FakeWeather({"Cape Town": cape_town})), now=later).run()
    assert summary.details == {f"bet:{bet_id}": "win"}
    with session_factory() as session:
        assert session.get(User, user_id).points == 1000 + first.amount + second.amount + 60


def test_partial_cash_out_of_everything_is_a_full_cash_out(session_factory, user_id, cape_town) -> None:
    bet_id = _pending_bet(session_factory, user_id, hours_left=5)

    result = _service(session_factory, cape_town).partial_cash_out(BET, bet_id, 100, NOW)

    assert result.remaining_stake == 0
    assert result.amount == result.offer.amount
    with session_factory() as session:
        bet = session.get(Bet, bet_id)
        assert bet.result == CASHED_OUT
        assert bet.cashout_amount == result.amount
        assert session.scalars(select(FinancialTransaction)).one().transaction_type == "cashout"


@pytest.mark.parametrize("percentage", [0, -5, 101])
def test_partial_cash_out_rejects_out_of_range_percentages(session_factory, user_id, cape_town, percentage) -> None:
    bet_id = _pending_bet(session_factory, user_id, hours_left=5)
    with pytest.raises(ValueError):
        _service(session_factory, cape_town).partial_cash_out(BET, bet_id, percentage, NOW)
    with session_factory() as session:
        assert session.get(Bet, bet_id).stake == 100


def test_partial_cash_out_refused_near_expiry_or_when_nothing_remains(session_factory, user_id, cape_town) -> None:
    service = _service(session_factory, cape_town)
    closing = _pending_bet(session_factory, user_id, hours_left=0.5)
    with pytest.raises(CashOutNotAllowedError):
        service.partial_cash_out(BET, closing, 50, NOW)

    tiny = _pending_bet(session_factory, user_id, hours_left=5, stake=1, odds=10.0)
    with pytest.raises(CashOutNotAllowedError, match="no stake riding"):
        service.partial_cash_out(BET, tiny, 50, NOW)
    with session_factory() as session:
        assert session.scalar(select(FinancialTransaction.id)) is None


def test_partial_cash_out_on_stale_stake_conflicts(session_factory, user_id) -> None:
    bet_id = _pending_bet(session_factory, user_id, hours_left=5)
    store = SqlSettlementStore(session_factory)
    unit = store.get_pending_unit(BET, bet_id)

    store.partial_cash_out(unit, 30, 50, 50, NOW)
    with pytest.raises(SettlementConflictError):
        store.partial_cash_out(unit, 30, 50, 50, NOW)
    with session_factory() as session:
        assert session.get(Bet, bet_id).stake == 50
        assert session.get(User, user_id).points == 1030


def test_partial_cash_out_of_combined_bet(session_factory, user_id, cape_town) -> None:
    with session_factory() as session, session.begin():
        combined = CombinedBet(
            user_id=user_id,
            city="Cape Town",
            target_date=NOW + timedelta(hours=5),
            total_stake=200,
            combined_odds=3.0,
            created_at=NOW - timedelta(hours=5),
        )
        combined.categories = [
            CombinedBetCategory(leg_order=0, prediction_type="rain", prediction_value="yes", odds=1.5),
            CombinedBetCategory(leg_order=1, prediction_type="temperature", prediction_value="18-22", odds=2.0),
        ]
        session.add(combined)
        session.flush()
        combined_id = combined.id

    result = _service(session_factory, cape_town).partial_cash_out(COMBINED_BET, combined_id, 25, NOW)

    assert result.remaining_stake == 150
    with session_factory() as session:
        assert session.get(CombinedBet, combined_id).total_stake == 150
        entry = session.scalars(select(FinancialTransaction)).one()
        assert (entry.reference_type, entry.amount) == (COMBINED_BET, result.amount)
