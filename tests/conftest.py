"""Shared fixtures: an in-memory database and a counting weather fake."""

from __future__ import annotations

from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from weatherbets.data.schemas import WeatherSnapshot
from weatherbets.db.models import Base, User
from weatherbets.errors import WeatherUnavailableError

NOW = datetime(2025, 6, 2, 12, 0)


class FakeWeather:
    """Callable stand-in for ``OpenWeatherClient.get_current`` that records calls."""

    def __init__(self, snapshots: dict[str, WeatherSnapshot], failing: tuple[str, ...] = ()) -> None:
        self.snapshots = {city.casefold(): snap for city, snap in snapshots.items()}
        self.failing = {city.casefold() for city in failing}
        self.calls: list[str] = []

    def __call__(self, city: str) -> WeatherSnapshot:
        self.calls.append(city)
        if city.casefold() in self.failing:
            raise WeatherUnavailableError(city, "provider timeout")
        try:
            return self.snapshots[city.casefold()]
        except KeyError as exc:
            raise WeatherUnavailableError(city, "unknown city") from exc


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)
    yield factory
    engine.dispose()


@pytest.fixture()
def user_id(session_factory) -> int:
    with session_factory() as session, session.begin():
        user = User(username="thandi", points=1000, balance_cents=5000)
        session.add(user)
        session.flush()
        return user.id


@pytest.fixture()
def cape_town() -> WeatherSnapshot:
    return WeatherSnapshot(
        city="Cape Town",
        temperature=19.6,
        humidity=70,
        pressure=1012,
        wind_speed=4.0,
        cloud_coverage=90,
        precipitation=1.2,
        conditions=["Rain", "light rain"],
    )


@pytest.fixture()
def durban() -> WeatherSnapshot:
    return WeatherSnapshot(
        city="Durban",
        temperature=27.2,
        humidity=55,
        pressure=1008,
        wind_speed=7.5,
        cloud_coverage=10,
        precipitation=0.0,
        conditions=["Clear", "clear sky"],
    )
