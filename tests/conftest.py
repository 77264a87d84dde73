"""Test fixtures and configuration."""

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from src.currency.converter import RateConverter
from src.currency.provider import StaticRateProvider
from src.pricing.engine import PricingEngine

NOW = datetime(2026, 6, 15, 12, 0, tzinfo=timezone.utc)


def make_price_list(
    currency: str = "USD",
    priority: int = 0,
    customer_group_id=None,
    slug=None,
    is_active: bool = True,
    start_date=None,
    end_date=None,
):
    """Create a mock price list."""
    price_list = MagicMock()
    price_list.id = uuid.uuid4()
    price_list.currency = currency
    price_list.priority = priority
    price_list.customer_group_id = customer_group_id
    price_list.is_active = is_active
    price_list.start_date = start_date
    price_list.end_date = end_date
    if customer_group_id is None:
        price_list.customer_group = None
    else:
        price_list.customer_group = MagicMock()
        price_list.customer_group.slug = slug
    return price_list


def make_product_price(
    price_list,
    product_id: str = "product-1",
    base_price: float = 100,
    sale_price=None,
    sale_start_date=None,
    sale_end_date=None,
    tiered_prices=None,
    variant_id=None,
    is_active: bool = True,
):
    """Create a mock product price in the given list."""
    price = MagicMock()
    price.id = uuid.uuid4()
    price.price_list_id = price_list.id
    price.product_id = product_id
    price.variant_id = variant_id
    price.base_price = Decimal(str(base_price))
    price.sale_price = Decimal(str(sale_price)) if sale_price is not None else None
    price.sale_start_date = sale_start_date
    price.sale_end_date = sale_end_date
    price.tiered_prices = tiered_prices or []
    price.is_active = is_active
    return price


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def sale_window():
    """A sale running from yesterday until tomorrow."""
    return NOW - timedelta(days=1), NOW + timedelta(days=1)


@pytest.fixture
def provider():
    """Rate provider with the USD-based default table."""
    return StaticRateProvider()


@pytest.fixture
def converter(provider):
    """Converter without persistence, loaded from the static provider."""
    return RateConverter(provider, base_currency="USD")


@pytest_asyncio.fixture
async def loaded_converter(converter):
    await converter.refresh_rates()
    return converter


@pytest.fixture
def mock_prices():
    """Mock ProductPriceRepository with nothing configured."""
    repo = AsyncMock()
    repo.find_candidate_price_lists = AsyncMock(return_value=[])
    repo.find_prices = AsyncMock(return_value=[])
    repo.find_known_products = AsyncMock(return_value=set())
    return repo


@pytest.fixture
def engine(mock_prices, loaded_converter):
    """PricingEngine over the mock repository with a frozen clock."""
    return PricingEngine(mock_prices, loaded_converter, clock=lambda: NOW)


@pytest.fixture
def stock(mock_prices):
    """Configure the mock repository with price lists and product prices."""

    def _stock(price_lists, prices, known=None):
        mock_prices.find_candidate_price_lists.return_value = list(price_lists)
        mock_prices.find_prices.return_value = list(prices)
        mock_prices.find_known_products.return_value = (
            set(known) if known is not None else {p.product_id for p in prices}
        )

    return _stock


@pytest.fixture
def plain_engine(mock_prices, converter):
    """PricingEngine for the synchronous helpers; rates are not loaded."""
    return PricingEngine(mock_prices, converter, clock=lambda: NOW)
