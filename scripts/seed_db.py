"""Seed database with reference data (currencies, customer groups, price lists)."""

import asyncio

from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from src.config import settings
from src.currency.provider import DEFAULT_RATES, rebase_rates
from src.models.base import Base, utcnow
from src.models.currency import Currency
from src.models.pricing import CustomerGroup, PriceList
from src.repositories.currency import describe_currency


CUSTOMER_GROUPS = [
    {"slug": "wholesale", "name": "Wholesale", "description": "Trade accounts buying in bulk"},
    {"slug": "vip", "name": "VIP", "description": "Loyalty programme members"},
]

PRICE_LISTS = [
    {"name": "Standard", "group": None, "priority": 0},
    {"name": "Wholesale", "group": "wholesale", "priority": 10},
    {"name": "VIP", "group": "vip", "priority": 20},
]


async def seed():
    engine = create_async_engine(settings.database_url, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with session_factory() as session:
        # Currencies
        existing = await session.execute(select(Currency))
        if existing.scalars().first():
            print("Database already seeded, skipping.")
            return

        base = settings.default_currency
        now = utcnow()
        for code, rate in rebase_rates(DEFAULT_RATES, base, "seed").items():
            name, symbol = describe_currency(code)
            session.add(
                Currency(
                    code=code,
                    name=name,
                    symbol=symbol,
                    rate=rate,
                    is_default=code == base,
                    is_active=True,
                    rate_last_updated=now,
                )
            )

        # Customer groups
        groups = {}
        for g in CUSTOMER_GROUPS:
            group = CustomerGroup(**g)
            session.add(group)
            groups[g["slug"]] = group

        await session.flush()

        # Price lists
        for pl in PRICE_LISTS:
            group = groups.get(pl["group"]) if pl["group"] else None
            session.add(
                PriceList(
                    name=pl["name"],
                    currency=base,
                    customer_group_id=group.id if group else None,
                    priority=pl["priority"],
                    is_active=True,
                )
            )

        await session.commit()
        print(
            f"Seeded {len(DEFAULT_RATES)} currencies, "
            f"{len(CUSTOMER_GROUPS)} customer groups, "
            f"{len(PRICE_LISTS)} price lists."
        )

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(seed())
