"""Pricing schemas — resolver options/results and price list admin payloads."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import AliasChoices, BaseModel, Field


class PriceOptions(BaseModel):
    """Caller context for price resolution.

    customer_group_ids are ids or slugs in preference order (most specific
    first). currency=None keeps the winning list's own currency.
    """

    customer_group_ids: list[str] = []
    currency: Optional[str] = None
    variant_id: Optional[str] = None


class TierPrice(BaseModel):
    """One quantity tier of a product price."""

    # Older rows were written as {"quantity", "price", "name"}
    min_quantity: int = Field(validation_alias=AliasChoices("min_quantity", "quantity"))
    price: Decimal
    label: Optional[str] = Field(default=None, validation_alias=AliasChoices("label", "name"))


class AppliedTier(BaseModel):
    min_quantity: int
    price: float
    label: Optional[str] = None


class ResolvedPrice(BaseModel):
    """Result from pricing engine."""

    price: float
    original_price: float
    currency: str
    on_sale: bool = False
    price_list_id: str
    customer_group_id: Optional[str] = None
    applied_tier: Optional[AppliedTier] = None
    discount_percentage: Optional[int] = None  # only when on_sale


class PriceFailure(BaseModel):
    code: str
    message: str


class PriceBatch(BaseModel):
    """Batch resolution result.

    Failed products are left out of ``prices`` and reported in ``errors``.
    """

    prices: dict[str, ResolvedPrice] = {}
    errors: dict[str, PriceFailure] = {}


# --- Administration ---


class CustomerGroupCreate(BaseModel):
    slug: str
    name: str
    description: Optional[str] = None


class CustomerGroupResponse(BaseModel):
    id: str
    slug: str
    name: str
    description: Optional[str] = None


class PriceListCreate(BaseModel):
    name: str
    description: Optional[str] = None
    currency: str
    customer_group_id: Optional[str] = None
    is_active: bool = True
    priority: int = 0
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class PriceListUpdate(BaseModel):
    """Partial update — only fields that were sent are applied."""

    name: Optional[str] = None
    description: Optional[str] = None
    currency: Optional[str] = None
    customer_group_id: Optional[str] = None
    is_active: Optional[bool] = None
    priority: Optional[int] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class PriceListResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    currency: str
    customer_group_id: Optional[str] = None
    is_active: bool
    priority: int
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class PriceListPage(BaseModel):
    items: list[PriceListResponse]
    total: int
    has_more: bool


class ProductPriceInput(BaseModel):
    """Create-or-update payload; matched by id, else by (list, product, variant)."""

    id: Optional[str] = None
    price_list_id: Optional[str] = None
    product_id: Optional[str] = None
    variant_id: Optional[str] = None
    base_price: Optional[Decimal] = None
    sale_price: Optional[Decimal] = None
    sale_start_date: Optional[datetime] = None
    sale_end_date: Optional[datetime] = None
    tiered_prices: Optional[list[TierPrice]] = None
    is_active: Optional[bool] = None


class ProductPriceResponse(BaseModel):
    id: str
    price_list_id: str
    product_id: str
    variant_id: Optional[str] = None
    base_price: float
    sale_price: Optional[float] = None
    sale_start_date: Optional[datetime] = None
    sale_end_date: Optional[datetime] = None
    tiered_prices: list[AppliedTier] = []
    is_active: bool


class ImportPricesRequest(BaseModel):
    prices: list[ProductPriceInput]
    update_existing: bool = False
    price_list_id: Optional[str] = None


class ImportResult(BaseModel):
    created: int = 0
    updated: int = 0
    failed: int = 0


class BulkUpdateItem(BaseModel):
    id: str
    changes: ProductPriceInput


class BulkUpdateRequest(BaseModel):
    updates: list[BulkUpdateItem]
    fail_on_error: bool = False


class BulkUpdateFailure(BaseModel):
    id: str
    error: str


class BulkUpdateResult(BaseModel):
    updated: int = 0
    failed: int = 0
    failures: list[BulkUpdateFailure] = []
