"""SQLAlchemy ORM models."""

from src.models.base import Base
from src.models.currency import Currency, CurrencyRateHistory
from src.models.pricing import CustomerGroup, PriceList, ProductPrice

__all__ = [
    "Base",
    "Currency",
    "CurrencyRateHistory",
    "CustomerGroup",
    "PriceList",
    "ProductPrice",
]
