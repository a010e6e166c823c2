"""FastAPI backend for WeatherBets settlement, odds and cash-out."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import asdict
from typing import Annotated, Literal

from fastapi import Depends, FastAPI, Header, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware

from weatherbets import __version__
from weatherbets.api.schemas import (
    CashOutResponse,
    InsuranceTerms,
    OddsQuoteRequest,
    OddsQuoteResponse,
    PartialCashOutRequest,
    PartialCashOutResponse,
    PendingResponse,
    PricedLeg,
    SettleResponse,
)
from weatherbets.config import get_api_access_key
from weatherbets.data.openweather_client import OpenWeatherClient
from weatherbets.errors import CashOutNotAllowedError, SettlementConflictError, WeatherUnavailableError
from weatherbets.notifications.service import NotificationService
from weatherbets.pricing.cashout import CashOutOffer
from weatherbets.pricing.policy import PricingPolicy
from weatherbets.pricing.quotes import CashOutService, LegQuoteRequest, OddsQuoter, VolatilityFn
from weatherbets.pricing.volatility import get_volatility
from weatherbets.scheduling.jobs import run_settlement_job
from weatherbets.settlement.accuracy import AccuracyRecorder
from weatherbets.settlement.repository import SqlSettlementStore

app = FastAPI(
    title="WeatherBets API",
    version=__version__,
    description="Settlement trigger, odds quotes and cash-out for weather wagers.",
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_store() -> SqlSettlementStore:
    return SqlSettlementStore()


def get_weather_client() -> Iterator[OpenWeatherClient]:
    client = OpenWeatherClient()
    try:
        yield client
    finally:
        client.close()


def get_policy() -> PricingPolicy:
    return PricingPolicy.from_settings()


def get_notifier() -> NotificationService:
    return NotificationService()


def get_accuracy_recorder() -> AccuracyRecorder:
    return AccuracyRecorder()


def get_volatility_lookup() -> VolatilityFn:
    return get_volatility


def require_api_key(x_api_key: str | None = Header(default=None, alias="X-API-Key")) -> None:
    expected = get_api_access_key()
    if not x_api_key or x_api_key != expected:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")


APIKeyDep = Annotated[None, Depends(require_api_key)]
StoreDep = Annotated[SqlSettlementStore, Depends(get_store)]
WeatherDep = Annotated[OpenWeatherClient, Depends(get_weather_client)]
PolicyDep = Annotated[PricingPolicy, Depends(get_policy)]
NotifierDep = Annotated[NotificationService, Depends(get_notifier)]
WagerKind = Literal["bet", "parlay", "combined_bet"]


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/settle", response_model=SettleResponse)
def settle(
    _: APIKeyDep,
    store: StoreDep,
    weather: WeatherDep,
    notifier: NotifierDep,
    accuracy: Annotated[AccuracyRecorder, Depends(get_accuracy_recorder)],
) -> SettleResponse:
    summary = run_settlement_job(store=store, fetch=weather.get_current, notifier=notifier, accuracy=accuracy)
    return SettleResponse(**summary)


@app.get("/pending", response_model=PendingResponse)
def pending(_: APIKeyDep, store: StoreDep) -> PendingResponse:
    return PendingResponse(**store.pending_counts())


@app.post("/odds/quote", response_model=OddsQuoteResponse)
def quote_odds(
    payload: OddsQuoteRequest,
    _: APIKeyDep,
    weather: WeatherDep,
    policy: PolicyDep,
    volatility: Annotated[VolatilityFn, Depends(get_volatility_lookup)],
) -> OddsQuoteResponse:
    quoter = OddsQuoter(weather.get_forecast, policy=policy, volatility=volatility)
    legs = [LegQuoteRequest(**leg.model_dump()) for leg in payload.legs]
    try:
        quote = quoter.quote(legs, payload.target_date, stake=payload.stake)
    except WeatherUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    return OddsQuoteResponse(
        days_ahead=quote.days_ahead,
        legs=[
            PricedLeg(
                city=request.city,
                category=priced.category,
                prediction_value=request.prediction_value,
                base_odds=priced.base,
                slot_multiplier=priced.slot_multiplier,
                time_decay=priced.time_decay,
                volatility=priced.volatility,
                volatility_label=vol.label,
                odds=priced.odds,
            )
            for request, priced, vol in zip(legs, quote.legs, quote.volatility)
        ],
        combined_odds=quote.combined,
        insurance=InsuranceTerms(**asdict(quote.insurance)) if quote.insurance else None,
    )


def _cash_out_response(kind: str, wager_id: int, offer: CashOutOffer, executed: bool) -> CashOutResponse:
    return CashOutResponse(
        kind=kind,
        wager_id=wager_id,
        amount=offer.amount,
        potential_win=offer.potential_win,
        percentage=offer.percentage,
        time_bonus=offer.time_bonus,
        weather_bonus=offer.weather_bonus,
        reasoning=offer.reasoning,
        eligible=offer.eligible,
        executed=executed,
    )


@app.get("/wagers/{kind}/{wager_id}/cashout", response_model=CashOutResponse)
def cash_out_quote(
    kind: WagerKind,
    wager_id: int,
    _: APIKeyDep,
    store: StoreDep,
    weather: WeatherDep,
    policy: PolicyDep,
) -> CashOutResponse:
    service = CashOutService(store, weather.get_current, policy=policy)
    try:
        offer = service.quote(kind, wager_id)
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return _cash_out_response(kind, wager_id, offer, executed=False)


@app.post("/wagers/{kind}/{wager_id}/cashout", response_model=CashOutResponse)
def cash_out(
    kind: WagerKind,
    wager_id: int,
    _: APIKeyDep,
    store: StoreDep,
    weather: WeatherDep,
    policy: PolicyDep,
    notifier: NotifierDep,
) -> CashOutResponse:
    service = CashOutService(store, weather.get_current, policy=policy, notifier=notifier)
    try:
        offer = service.cash_out(kind, wager_id)
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except (CashOutNotAllowedError, SettlementConflictError) as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return _cash_out_response(kind, wager_id, offer, executed=True)


@app.post("/wagers/{kind}/{wager_id}/cashout/partial", response_model=PartialCashOutResponse)
def partial_cash_out(
    kind: WagerKind,
    wager_id: int,
    payload: PartialCashOutRequest,
    _: APIKeyDep,
    store: StoreDep,
    weather: WeatherDep,
    policy: PolicyDep,
    notifier: NotifierDep,
) -> PartialCashOutResponse:
    service = CashOutService(store, weather.get_current, policy=policy, notifier=notifier)
    try:
        result = service.partial_cash_out(kind, wager_id, payload.percentage)
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except (CashOutNotAllowedError, SettlementConflictError) as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    return PartialCashOutResponse(
        kind=kind,
        wager_id=wager_id,
        percentage=result.percentage,
        amount=result.amount,
        remaining_stake=result.remaining_stake,
        offer=_cash_out_response(kind, wager_id, result.offer, executed=True),
    )
