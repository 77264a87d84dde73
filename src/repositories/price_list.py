"""Price list and customer group repository."""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.errors import (
    CustomerGroupNotFoundError,
    InvalidArgumentError,
    PriceListNotFoundError,
)
from src.models.pricing import CustomerGroup, PriceList
from src.money import normalize_currency
from src.schemas.pricing import CustomerGroupCreate, PriceListCreate, PriceListUpdate

logger = structlog.get_logger()

SORT_COLUMNS = {
    "priority": PriceList.priority,
    "name": PriceList.name,
    "created_at": PriceList.created_at,
}


def _parse_id(value: str, kind: str) -> uuid.UUID:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise InvalidArgumentError(f"Invalid {kind} id: {value}", **{f"{kind}_id": value})


class PriceListRepository:
    """CRUD for price lists and the customer groups they target."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # --- Customer groups ---

    async def create_customer_group(self, data: CustomerGroupCreate) -> CustomerGroup:
        group = CustomerGroup(slug=data.slug, name=data.name, description=data.description)
        self.db.add(group)
        await self.db.flush()
        logger.info("customer_group_created", customer_group_id=str(group.id), slug=group.slug)
        return group

    async def get_customer_group(self, customer_group_id: str) -> Optional[CustomerGroup]:
        result = await self.db.execute(
            select(CustomerGroup).where(
                CustomerGroup.id == _parse_id(customer_group_id, "customer_group")
            )
        )
        return result.scalar_one_or_none()

    async def list_customer_groups(self) -> list[CustomerGroup]:
        result = await self.db.execute(select(CustomerGroup).order_by(CustomerGroup.slug))
        return list(result.scalars().all())

    async def _require_customer_group(self, customer_group_id: str) -> uuid.UUID:
        group = await self.get_customer_group(customer_group_id)
        if group is None:
            raise CustomerGroupNotFoundError(customer_group_id)
        return group.id

    # --- Price lists ---

    async def create(self, data: PriceListCreate) -> PriceList:
        """Create a price list; the customer group, if any, must exist."""
        group_id = None
        if data.customer_group_id:
            group_id = await self._require_customer_group(data.customer_group_id)

        price_list = PriceList(
            name=data.name,
            description=data.description,
            currency=normalize_currency(data.currency),
            customer_group_id=group_id,
            is_active=data.is_active,
            priority=data.priority,
            start_date=data.start_date,
            end_date=data.end_date,
        )
        self.db.add(price_list)
        await self.db.flush()

        logger.info(
            "price_list_created",
            price_list_id=str(price_list.id),
            currency=price_list.currency,
            priority=price_list.priority,
        )
        return price_list

    async def get(self, price_list_id: str) -> Optional[PriceList]:
        result = await self.db.execute(
            select(PriceList).where(PriceList.id == _parse_id(price_list_id, "price_list"))
        )
        return result.scalar_one_or_none()

    async def search(
        self,
        search: Optional[str] = None,
        currency: Optional[str] = None,
        customer_group_id: Optional[str] = None,
        is_active: Optional[bool] = None,
        skip: int = 0,
        take: int = 10,
        sort_by: str = "priority",
        sort_order: str = "desc",
    ) -> tuple[list[PriceList], int]:
        """Filtered, paginated price lists and the total match count."""
        stmt = select(PriceList)

        if search:
            pattern = f"%{search}%"
            stmt = stmt.where(
                or_(PriceList.name.ilike(pattern), PriceList.description.ilike(pattern))
            )
        if currency:
            stmt = stmt.where(PriceList.currency == normalize_currency(currency))
        if customer_group_id:
            stmt = stmt.where(
                PriceList.customer_group_id == _parse_id(customer_group_id, "customer_group")
            )
        if is_active is not None:
            stmt = stmt.where(PriceList.is_active == is_active)

        count_stmt = select(func.count()).select_from(stmt.subquery())
        total = (await self.db.execute(count_stmt)).scalar_one()

        column = SORT_COLUMNS.get(sort_by)
        if column is None:
            raise InvalidArgumentError(f"Cannot sort by {sort_by}", sort_by=sort_by)
        order = column.asc() if sort_order.lower() == "asc" else column.desc()

        stmt = stmt.order_by(order).offset(skip).limit(take)
        result = await self.db.execute(stmt)
        return list(result.scalars().all()), total

    async def update(self, price_list_id: str, data: PriceListUpdate) -> PriceList:
        price_list = await self.get(price_list_id)
        if price_list is None:
            raise PriceListNotFoundError(price_list_id)

        changes = data.model_dump(exclude_unset=True)
        if "currency" in changes:
            changes["currency"] = normalize_currency(changes["currency"])
        if changes.get("customer_group_id"):
            changes["customer_group_id"] = await self._require_customer_group(
                changes["customer_group_id"]
            )

        for field, value in changes.items():
            setattr(price_list, field, value)

        await self.db.flush()
        logger.info("price_list_updated", price_list_id=price_list_id, fields=sorted(changes))
        return price_list

    async def delete(self, price_list_id: str) -> bool:
        price_list = await self.get(price_list_id)
        if price_list is None:
            return False
        await self.db.delete(price_list)
        await self.db.flush()
        logger.info("price_list_deleted", price_list_id=price_list_id)
        return True
