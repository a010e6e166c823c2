"""Exceptions shared across settlement, pricing and the API."""

from __future__ import annotations


class WeatherUnavailableError(RuntimeError):
    """The weather provider could not supply an observation for a city."""

    def __init__(self, city: str, reason: str = "") -> None:
        self.city = city
        self.reason = reason
        super().__init__(f"Weather unavailable for {city}: {reason}" if reason else f"Weather unavailable for {city}")


class SettlementConflictError(RuntimeError):
    """A wager already left the pending state (another run or a cash-out won)."""


class BalanceUpdateError(RuntimeError):
    """The atomic balance adjustment could not be applied."""


class CashOutNotAllowedError(RuntimeError):
    """Cash-out was requested for a wager that cannot be cashed out."""
