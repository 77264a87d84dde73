"""Price list API — administration of price lists and product prices."""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query

from src.dependencies import get_price_list_repository, get_product_price_repository
from src.errors import PriceListNotFoundError, ProductPriceNotFoundError
from src.models.pricing import CustomerGroup, PriceList, ProductPrice
from src.repositories.price_list import PriceListRepository
from src.repositories.product_price import ProductPriceRepository
from src.schemas.pricing import (
    AppliedTier,
    BulkUpdateRequest,
    BulkUpdateResult,
    CustomerGroupCreate,
    CustomerGroupResponse,
    ImportPricesRequest,
    ImportResult,
    PriceListCreate,
    PriceListPage,
    PriceListResponse,
    PriceListUpdate,
    ProductPriceInput,
    ProductPriceResponse,
)
from src.pricing.rules import parse_tiers

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1", tags=["price-lists"])


def _price_list_response(price_list: PriceList) -> PriceListResponse:
    return PriceListResponse(
        id=str(price_list.id),
        name=price_list.name,
        description=price_list.description,
        currency=price_list.currency,
        customer_group_id=(
            str(price_list.customer_group_id) if price_list.customer_group_id else None
        ),
        is_active=price_list.is_active,
        priority=price_list.priority,
        start_date=price_list.start_date,
        end_date=price_list.end_date,
    )


def _product_price_response(price: ProductPrice) -> ProductPriceResponse:
    return ProductPriceResponse(
        id=str(price.id),
        price_list_id=str(price.price_list_id),
        product_id=price.product_id,
        variant_id=price.variant_id,
        base_price=float(price.base_price),
        sale_price=float(price.sale_price) if price.sale_price is not None else None,
        sale_start_date=price.sale_start_date,
        sale_end_date=price.sale_end_date,
        tiered_prices=[
            AppliedTier(min_quantity=t.min_quantity, price=float(t.price), label=t.label)
            for t in parse_tiers(price.tiered_prices)
        ],
        is_active=price.is_active,
    )


def _group_response(group: CustomerGroup) -> CustomerGroupResponse:
    return CustomerGroupResponse(
        id=str(group.id), slug=group.slug, name=group.name, description=group.description
    )


# --- Customer groups ---


@router.get("/customer-groups", response_model=list[CustomerGroupResponse])
async def list_customer_groups(
    repo: PriceListRepository = Depends(get_price_list_repository),
) -> list[CustomerGroupResponse]:
    return [_group_response(g) for g in await repo.list_customer_groups()]


@router.post("/customer-groups", response_model=CustomerGroupResponse, status_code=201)
async def create_customer_group(
    data: CustomerGroupCreate,
    repo: PriceListRepository = Depends(get_price_list_repository),
) -> CustomerGroupResponse:
    return _group_response(await repo.create_customer_group(data))


# --- Price lists ---


@router.get("/price-lists", response_model=PriceListPage)
async def search_price_lists(
    search: Optional[str] = Query(None),
    currency: Optional[str] = Query(None),
    customer_group_id: Optional[str] = Query(None),
    is_active: Optional[bool] = Query(None),
    skip: int = Query(0, ge=0),
    take: int = Query(10, ge=1, le=100),
    sort_by: str = Query("priority"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    repo: PriceListRepository = Depends(get_price_list_repository),
) -> PriceListPage:
    """List price lists with filters and pagination."""
    items, total = await repo.search(
        search=search,
        currency=currency,
        customer_group_id=customer_group_id,
        is_active=is_active,
        skip=skip,
        take=take,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return PriceListPage(
        items=[_price_list_response(pl) for pl in items],
        total=total,
        has_more=skip + len(items) < total,
    )


@router.post("/price-lists", response_model=PriceListResponse, status_code=201)
async def create_price_list(
    data: PriceListCreate,
    repo: PriceListRepository = Depends(get_price_list_repository),
) -> PriceListResponse:
    return _price_list_response(await repo.create(data))


@router.get("/price-lists/{price_list_id}", response_model=PriceListResponse)
async def get_price_list(
    price_list_id: str,
    repo: PriceListRepository = Depends(get_price_list_repository),
) -> PriceListResponse:
    price_list = await repo.get(price_list_id)
    if price_list is None:
        raise PriceListNotFoundError(price_list_id)
    return _price_list_response(price_list)


@router.patch("/price-lists/{price_list_id}", response_model=PriceListResponse)
async def update_price_list(
    price_list_id: str,
    data: PriceListUpdate,
    repo: PriceListRepository = Depends(get_price_list_repository),
) -> PriceListResponse:
    return _price_list_response(await repo.update(price_list_id, data))


@router.delete("/price-lists/{price_list_id}", status_code=204)
async def delete_price_list(
    price_list_id: str,
    repo: PriceListRepository = Depends(get_price_list_repository),
) -> None:
    if not await repo.delete(price_list_id):
        raise PriceListNotFoundError(price_list_id)


# --- Product prices ---


@router.put("/product-prices", response_model=ProductPriceResponse)
async def set_product_price(
    data: ProductPriceInput,
    repo: ProductPriceRepository = Depends(get_product_price_repository),
) -> ProductPriceResponse:
    """Create or update a product price."""
    return _product_price_response(await repo.set_price(data))


@router.delete("/product-prices/{price_id}", status_code=204)
async def delete_product_price(
    price_id: str,
    repo: ProductPriceRepository = Depends(get_product_price_repository),
) -> None:
    if not await repo.delete_price(price_id):
        raise ProductPriceNotFoundError(price_id)


@router.post("/product-prices/import", response_model=ImportResult)
async def import_product_prices(
    data: ImportPricesRequest,
    repo: ProductPriceRepository = Depends(get_product_price_repository),
) -> ImportResult:
    return await repo.import_prices(
        data.prices,
        update_existing=data.update_existing,
        price_list_id=data.price_list_id,
    )


@router.post("/product-prices/bulk-update", response_model=BulkUpdateResult)
async def bulk_update_product_prices(
    data: BulkUpdateRequest,
    repo: ProductPriceRepository = Depends(get_product_price_repository),
) -> BulkUpdateResult:
    return await repo.bulk_update(data.updates, fail_on_error=data.fail_on_error)
