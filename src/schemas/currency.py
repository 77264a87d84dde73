"""Currency rate schemas."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class CurrencyRate(BaseModel):
    """One row of the rate table, relative to the base currency."""

    code: str
    rate: float
    last_updated: Optional[datetime] = None


class RateMetadata(BaseModel):
    last_updated: Optional[datetime] = None
    source: str


class RateHistoryEntry(BaseModel):
    base_currency: str
    target_currency: str
    rate: float
    source: str
    recorded_at: datetime


class RateHistoryPage(BaseModel):
    history: list[RateHistoryEntry]
    total: int


class ManualRateRequest(BaseModel):
    rate: float
    source: str = "manual"


class ConversionResponse(BaseModel):
    amount: float
    from_currency: str
    to_currency: str
    converted: float
