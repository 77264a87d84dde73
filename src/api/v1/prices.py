"""Prices API — resolved prices for storefront and checkout."""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query

from src.pricing.engine import PricingEngine
from src.dependencies import get_pricing_engine
from src.schemas.pricing import PriceBatch, PriceOptions, ResolvedPrice

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/prices", tags=["prices"])


@router.get("", response_model=PriceBatch)
async def get_prices(
    ids: list[str] = Query(..., description="Product ids"),
    quantity: int = Query(1),
    currency: Optional[str] = Query(None),
    variant_id: Optional[str] = Query(None),
    customer_group_ids: list[str] = Query([]),
    engine: PricingEngine = Depends(get_pricing_engine),
) -> PriceBatch:
    """Resolve prices for several products.

    Products that cannot be priced are listed under ``errors``.
    """
    options = PriceOptions(
        customer_group_ids=customer_group_ids,
        currency=currency,
        variant_id=variant_id,
    )
    return await engine.calculate_prices(ids, quantity, options)


@router.get("/{product_id}", response_model=ResolvedPrice)
async def get_price(
    product_id: str,
    quantity: int = Query(1),
    currency: Optional[str] = Query(None),
    variant_id: Optional[str] = Query(None),
    customer_group_ids: list[str] = Query([]),
    engine: PricingEngine = Depends(get_pricing_engine),
) -> ResolvedPrice:
    """Resolve the price of one product for a quantity and customer context."""
    options = PriceOptions(
        customer_group_ids=customer_group_ids,
        currency=currency,
        variant_id=variant_id,
    )
    return await engine.calculate_price(product_id, quantity, options)
