"""Currency repository — persisted rate table and rate history."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.models.base import utcnow
from src.models.currency import Currency, CurrencyRateHistory

logger = structlog.get_logger()

CURRENCY_NAMES = {
    "USD": ("US Dollar", "$"),
    "EUR": ("Euro", "€"),
    "GBP": ("British Pound", "£"),
    "JPY": ("Japanese Yen", "¥"),
    "CAD": ("Canadian Dollar", "C$"),
    "AUD": ("Australian Dollar", "A$"),
    "CHF": ("Swiss Franc", "Fr"),
    "CNY": ("Chinese Yuan", "¥"),
    "INR": ("Indian Rupee", "₹"),
    "BRL": ("Brazilian Real", "R$"),
    "RUB": ("Russian Ruble", "₽"),
}


def describe_currency(code: str) -> tuple[str, str]:
    """(name, symbol) for a code, falling back to the code itself."""
    return CURRENCY_NAMES.get(code, (f"{code} Currency", code))


class CurrencyRepository:
    """Owns its sessions: the rate table outlives any single request."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def ensure_default(self, code: str) -> None:
        """Make ``code`` the base currency with rate 1."""
        async with self.session_factory() as db:
            # Only one default at a time
            await db.execute(
                update(Currency)
                .where(Currency.code != code, Currency.is_default == True)  # noqa: E712
                .values(is_default=False)
            )
            result = await db.execute(select(Currency).where(Currency.code == code))
            currency = result.scalar_one_or_none()

            if currency is None:
                name, symbol = describe_currency(code)
                db.add(
                    Currency(
                        code=code,
                        name=name,
                        symbol=symbol,
                        rate=Decimal("1"),
                        is_default=True,
                        is_active=True,
                        rate_last_updated=utcnow(),
                    )
                )
                logger.info("default_currency_created", currency=code)
            elif not currency.is_default or currency.rate != 1:
                currency.is_default = True
                currency.rate = Decimal("1")
                logger.info("default_currency_updated", currency=code)

            await db.commit()

    async def list_rates(self, active_only: bool = True) -> list[Currency]:
        async with self.session_factory() as db:
            stmt = select(Currency).order_by(Currency.is_default.desc(), Currency.code)
            if active_only:
                stmt = stmt.where(Currency.is_active == True)  # noqa: E712
            result = await db.execute(stmt)
            return list(result.scalars().all())

    async def upsert_rates(
        self,
        rates: dict[str, Decimal],
        base_currency: str,
        timestamp: datetime,
        source: str,
    ) -> None:
        """Upsert every rate and append history rows in one transaction."""
        async with self.session_factory() as db:
            async with db.begin():
                result = await db.execute(
                    select(Currency).where(Currency.code.in_(list(rates)))
                )
                existing = {c.code: c for c in result.scalars().all()}

                for code, rate in rates.items():
                    currency = existing.get(code)
                    if currency is None:
                        name, symbol = describe_currency(code)
                        currency = Currency(
                            code=code,
                            name=name,
                            symbol=symbol,
                            is_default=code == base_currency,
                            is_active=True,
                        )
                        db.add(currency)
                    currency.rate = rate
                    currency.rate_last_updated = timestamp

                    if code != base_currency:
                        db.add(
                            CurrencyRateHistory(
                                base_currency=base_currency,
                                target_currency=code,
                                rate=rate,
                                source=source,
                                recorded_at=timestamp,
                            )
                        )

        logger.debug("currency_rates_persisted", count=len(rates), source=source)

    async def delete(self, code: str) -> bool:
        async with self.session_factory() as db:
            async with db.begin():
                result = await db.execute(select(Currency).where(Currency.code == code))
                currency = result.scalar_one_or_none()
                if currency is None:
                    return False
                await db.delete(currency)
        return True

    async def history(
        self,
        base_currency: Optional[str] = None,
        target_currency: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[CurrencyRateHistory], int]:
        """Newest-first history page and the total count."""
        stmt = select(CurrencyRateHistory)
        if base_currency:
            stmt = stmt.where(CurrencyRateHistory.base_currency == base_currency)
        if target_currency:
            stmt = stmt.where(CurrencyRateHistory.target_currency == target_currency)
        if start_date:
            stmt = stmt.where(CurrencyRateHistory.recorded_at >= start_date)
        if end_date:
            stmt = stmt.where(CurrencyRateHistory.recorded_at <= end_date)

        async with self.session_factory() as db:
            count_stmt = select(func.count()).select_from(stmt.subquery())
            total = (await db.execute(count_stmt)).scalar_one()

            stmt = (
                stmt.order_by(CurrencyRateHistory.recorded_at.desc())
                .offset(offset)
                .limit(limit)
            )
            result = await db.execute(stmt)
            return list(result.scalars().all()), total
