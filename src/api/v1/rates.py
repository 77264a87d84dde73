"""Currency rate API."""

from datetime import datetime
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query

from src.currency.converter import RateConverter
from src.dependencies import get_rate_converter
from src.schemas.currency import (
    ConversionResponse,
    CurrencyRate,
    ManualRateRequest,
    RateHistoryPage,
    RateMetadata,
)

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1", tags=["rates"])


@router.get("/rates", response_model=list[CurrencyRate])
async def list_rates(
    converter: RateConverter = Depends(get_rate_converter),
) -> list[CurrencyRate]:
    return converter.get_all_rates()


@router.get("/rates/metadata", response_model=RateMetadata)
async def rate_metadata(
    converter: RateConverter = Depends(get_rate_converter),
) -> RateMetadata:
    return converter.get_metadata()


@router.get("/rates/history", response_model=RateHistoryPage)
async def rate_history(
    base_currency: Optional[str] = Query(None),
    target_currency: Optional[str] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    converter: RateConverter = Depends(get_rate_converter),
) -> RateHistoryPage:
    return await converter.get_rate_history(
        base_currency=base_currency,
        target_currency=target_currency,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
        offset=offset,
    )


@router.post("/rates/refresh", response_model=RateMetadata)
async def refresh_rates(
    converter: RateConverter = Depends(get_rate_converter),
) -> RateMetadata:
    """Force a fetch from the rate provider, bypassing its cache."""
    await converter.refresh_rates(force=True)
    return converter.get_metadata()


@router.get("/rates/{code}", response_model=CurrencyRate)
async def get_rate(
    code: str,
    converter: RateConverter = Depends(get_rate_converter),
) -> CurrencyRate:
    return converter.get_rate(code)


@router.put("/rates/{code}", response_model=CurrencyRate)
async def set_rate(
    code: str,
    data: ManualRateRequest,
    converter: RateConverter = Depends(get_rate_converter),
) -> CurrencyRate:
    """Set a rate by hand (relative to the base currency)."""
    return await converter.set_rate(code, data.rate, source=data.source)


@router.delete("/rates/{code}", status_code=204)
async def delete_rate(
    code: str,
    converter: RateConverter = Depends(get_rate_converter),
) -> None:
    await converter.delete_rate(code)


@router.get("/convert", response_model=ConversionResponse)
async def convert(
    amount: float = Query(..., ge=0),
    from_currency: str = Query(..., alias="from"),
    to_currency: str = Query(..., alias="to"),
    converter: RateConverter = Depends(get_rate_converter),
) -> ConversionResponse:
    converted = converter.convert(amount, from_currency, to_currency)
    return ConversionResponse(
        amount=amount,
        from_currency=from_currency.upper(),
        to_currency=to_currency.upper(),
        converted=float(converted),
    )
