"""Product price repository — resolver lookups plus price administration."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Iterable, Optional

import structlog
from sqlalchemy import and_, delete, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from src.errors import InvalidArgumentError, PricingError, ProductPriceNotFoundError
from src.models.pricing import CustomerGroup, PriceList, ProductPrice
from src.schemas.pricing import (
    BulkUpdateFailure,
    BulkUpdateItem,
    BulkUpdateResult,
    ImportResult,
    ProductPriceInput,
)

logger = structlog.get_logger()


def _as_uuids(values: Iterable[str]) -> list[uuid.UUID]:
    """Keep only the values that parse as UUIDs (the rest may be slugs)."""
    result = []
    for value in values:
        try:
            result.append(uuid.UUID(str(value)))
        except ValueError:
            continue
    return result


class ProductPriceRepository:
    """Reads price lists and product prices; writes product prices."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # --- Resolver reads ---

    async def find_candidate_price_lists(
        self,
        customer_group_ids: list[str],
        now: datetime,
    ) -> list[PriceList]:
        """Active, currently valid lists the caller may use.

        Default lists (no customer group) are always included. Group tokens
        match either the group id or its slug.
        """
        group_filter = PriceList.customer_group_id.is_(None)
        if customer_group_ids:
            group_filter = or_(
                group_filter,
                PriceList.customer_group_id.in_(_as_uuids(customer_group_ids)),
                CustomerGroup.slug.in_(customer_group_ids),
            )

        stmt = (
            select(PriceList)
            .outerjoin(CustomerGroup, PriceList.customer_group_id == CustomerGroup.id)
            .options(selectinload(PriceList.customer_group))
            .where(
                and_(
                    PriceList.is_active == True,  # noqa: E712
                    or_(PriceList.start_date.is_(None), PriceList.start_date <= now),
                    or_(PriceList.end_date.is_(None), PriceList.end_date >= now),
                    group_filter,
                )
            )
            .order_by(PriceList.priority.desc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def find_prices(
        self,
        price_list_ids: list,
        product_ids: list[str],
        variant_id: Optional[str] = None,
    ) -> list[ProductPrice]:
        """Active prices for the products in the given lists, one query.

        With a variant, both the variant row and the product-level row are
        returned so the caller can prefer the variant.
        """
        if not price_list_ids or not product_ids:
            return []

        if variant_id is None:
            variant_filter = ProductPrice.variant_id.is_(None)
        else:
            variant_filter = or_(
                ProductPrice.variant_id == variant_id,
                ProductPrice.variant_id.is_(None),
            )

        stmt = select(ProductPrice).where(
            ProductPrice.price_list_id.in_(price_list_ids),
            ProductPrice.product_id.in_(product_ids),
            ProductPrice.is_active == True,  # noqa: E712
            variant_filter,
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def find_known_products(self, product_ids: list[str]) -> set[str]:
        """Product ids that have at least one price row in any list."""
        if not product_ids:
            return set()
        stmt = (
            select(ProductPrice.product_id)
            .where(ProductPrice.product_id.in_(product_ids))
            .distinct()
        )
        result = await self.db.execute(stmt)
        return set(result.scalars().all())

    # --- Administration ---

    async def get(self, price_id: str) -> Optional[ProductPrice]:
        ids = _as_uuids([price_id])
        if not ids:
            return None
        result = await self.db.execute(select(ProductPrice).where(ProductPrice.id == ids[0]))
        return result.scalar_one_or_none()

    async def _find_existing(self, data: ProductPriceInput) -> Optional[ProductPrice]:
        if data.id:
            return await self.get(data.id)
        if data.product_id and data.price_list_id:
            list_ids = _as_uuids([data.price_list_id])
            if not list_ids:
                return None
            variant_filter = (
                ProductPrice.variant_id.is_(None)
                if data.variant_id is None
                else ProductPrice.variant_id == data.variant_id
            )
            result = await self.db.execute(
                select(ProductPrice).where(
                    ProductPrice.price_list_id == list_ids[0],
                    ProductPrice.product_id == data.product_id,
                    variant_filter,
                )
            )
            return result.scalar_one_or_none()
        return None

    def _apply(self, price: ProductPrice, data: ProductPriceInput) -> None:
        changes = data.model_dump(exclude_unset=True, exclude={"id"})
        if changes.get("price_list_id") is not None:
            ids = _as_uuids([changes["price_list_id"]])
            if not ids:
                raise InvalidArgumentError(
                    f"Invalid price list id: {changes['price_list_id']}",
                    price_list_id=changes["price_list_id"],
                )
            changes["price_list_id"] = ids[0]
        if "tiered_prices" in changes:
            changes["tiered_prices"] = [
                tier.model_dump(mode="json") for tier in (data.tiered_prices or [])
            ]
        for field, value in changes.items():
            setattr(price, field, value)

    def _create(self, data: ProductPriceInput) -> ProductPrice:
        if not data.product_id or not data.price_list_id or data.base_price is None:
            raise InvalidArgumentError(
                "product_id, price_list_id and base_price are required",
                product_id=data.product_id,
            )
        price = ProductPrice(tiered_prices=[], is_active=True)
        self._apply(price, data)
        self.db.add(price)
        return price

    async def set_price(self, data: ProductPriceInput) -> ProductPrice:
        """Create the price, or update it when it already exists."""
        price = await self._find_existing(data)
        if price is None:
            if data.id:
                raise ProductPriceNotFoundError(data.id)
            price = self._create(data)
            action = "created"
        else:
            self._apply(price, data)
            action = "updated"

        await self.db.flush()
        logger.info(
            "product_price_saved",
            action=action,
            price_id=str(price.id),
            product_id=price.product_id,
            price_list_id=str(price.price_list_id),
        )
        return price

    async def delete_price(self, price_id: str) -> bool:
        ids = _as_uuids([price_id])
        if not ids:
            return False
        result = await self.db.execute(delete(ProductPrice).where(ProductPrice.id == ids[0]))
        return bool(result.rowcount)

    async def import_prices(
        self,
        rows: list[ProductPriceInput],
        update_existing: bool = False,
        price_list_id: Optional[str] = None,
    ) -> ImportResult:
        """Create-or-update many prices; a bad row is counted, not raised."""
        outcome = ImportResult()

        for row in rows:
            if price_list_id and not row.price_list_id:
                row = row.model_copy(update={"price_list_id": price_list_id})

            if not row.product_id or not row.price_list_id:
                outcome.failed += 1
                continue

            try:
                async with self.db.begin_nested():
                    existing = await self._find_existing(row.model_copy(update={"id": None}))
                    if existing is not None:
                        if not update_existing:
                            outcome.failed += 1
                            continue
                        self._apply(existing, row)
                    else:
                        self._create(row)
                    await self.db.flush()
                if existing is not None:
                    outcome.updated += 1
                else:
                    outcome.created += 1
            except (PricingError, SQLAlchemyError) as e:
                # The savepoint has rolled the row back
                logger.warning("price_import_row_failed", product_id=row.product_id, error=str(e))
                outcome.failed += 1

        logger.info(
            "prices_imported",
            created=outcome.created,
            updated=outcome.updated,
            failed=outcome.failed,
        )
        return outcome

    async def bulk_update(
        self,
        updates: list[BulkUpdateItem],
        fail_on_error: bool = False,
    ) -> BulkUpdateResult:
        """Apply per-id changes; with fail_on_error the first failure raises."""
        outcome = BulkUpdateResult()

        for item in updates:
            price = await self.get(item.id)
            if price is None:
                error = ProductPriceNotFoundError(item.id)
                outcome.failures.append(BulkUpdateFailure(id=item.id, error=error.message))
                outcome.failed += 1
                if fail_on_error:
                    raise error
                continue

            try:
                self._apply(price, item.changes)
            except PricingError as e:
                outcome.failures.append(BulkUpdateFailure(id=item.id, error=e.message))
                outcome.failed += 1
                if fail_on_error:
                    raise
                continue
            outcome.updated += 1

        await self.db.flush()
        logger.info("prices_bulk_updated", updated=outcome.updated, failed=outcome.failed)
        return outcome
