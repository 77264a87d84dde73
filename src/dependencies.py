"""FastAPI dependencies for the pricing services."""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.currency.converter import RateConverter
from src.database import get_db
from src.pricing.engine import PricingEngine
from src.repositories.price_list import PriceListRepository
from src.repositories.product_price import ProductPriceRepository


def get_rate_converter(request: Request) -> RateConverter:
    """The app-wide converter created in the lifespan handler."""
    return request.app.state.rate_converter


def get_product_price_repository(
    db: AsyncSession = Depends(get_db),
) -> ProductPriceRepository:
    return ProductPriceRepository(db)


def get_price_list_repository(db: AsyncSession = Depends(get_db)) -> PriceListRepository:
    return PriceListRepository(db)


def get_pricing_engine(
    prices: ProductPriceRepository = Depends(get_product_price_repository),
    converter: RateConverter = Depends(get_rate_converter),
) -> PricingEngine:
    return PricingEngine(prices, converter)
