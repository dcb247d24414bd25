"""Exchange-rate records as stored in the cache."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, field_validator


class ExchangeRate(BaseModel):
    model_config = ConfigDict(frozen=True)

    from_currency: str
    to_currency: str
    rate: float
    last_updated: datetime

    @field_validator("rate")
    @classmethod
    def validate_rate(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"Exchange rate must be positive, got {v}.")
        return v


class CurrencyRates(BaseModel):
    """A full rate table: 1 unit of ``base_currency`` in each other currency."""

    model_config = ConfigDict(frozen=True)

    base_currency: str
    rates: dict[str, float]
    last_updated: datetime

    def rate_to(self, currency: str) -> float | None:
        if currency.upper() == self.base_currency:
            return 1.0
        return self.rates.get(currency.upper())
