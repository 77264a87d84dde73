"""Rate Converter — the currency rate table and conversions against it."""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

import structlog

from src.currency.provider import RateProvider
from src.errors import CurrencyNotFoundError, InvalidArgumentError, UpstreamFailureError
from src.models.base import utcnow
from src.money import Number, normalize_currency, round_money, to_decimal
from src.repositories.currency import CurrencyRepository
from src.schemas.currency import (
    CurrencyRate,
    RateHistoryEntry,
    RateHistoryPage,
    RateMetadata,
)

logger = structlog.get_logger()


@dataclass(frozen=True)
class RateEntry:
    code: str
    rate: Decimal
    last_updated: Optional[datetime]


class RateConverter:
    """Holds the rate table in memory, persisted through an optional repository.

    The table is replaced wholesale on every successful refresh, so readers
    see either the previous table or the new one, never a mix.
    """

    def __init__(
        self,
        provider: RateProvider,
        repository: Optional[CurrencyRepository] = None,
        base_currency: str = "USD",
    ):
        self.provider = provider
        self.repository = repository
        self.base_currency = normalize_currency(base_currency)
        self._rates: dict[str, RateEntry] = {
            self.base_currency: RateEntry(self.base_currency, Decimal("1"), None)
        }
        self._metadata = RateMetadata(last_updated=None, source="none")
        self._task: Optional[asyncio.Task] = None

    # --- Lifecycle ---

    async def initialize(self, update_interval_seconds: int = 0) -> None:
        """Load the persisted table, fetch fresh rates, start periodic refresh.

        Raises:
            UpstreamFailureError: The initial fetch failed
        """
        logger.info("rate_converter_initializing", base=self.base_currency)

        if self.repository is not None:
            await self.repository.ensure_default(self.base_currency)
            persisted = await self.repository.list_rates()
            table = {
                c.code: RateEntry(c.code, to_decimal(c.rate), c.rate_last_updated)
                for c in persisted
            }
            base = table.get(self.base_currency)
            table[self.base_currency] = RateEntry(
                self.base_currency, Decimal("1"), base.last_updated if base else None
            )
            self._rates = table

        await self.refresh_rates(force=True)

        if update_interval_seconds > 0:
            self.start_periodic_updates(update_interval_seconds)

        logger.info("rate_converter_initialized", currencies=len(self._rates))

    async def refresh_rates(self, force: bool = False) -> None:
        """Fetch from the provider and upsert every returned code.

        A failed fetch leaves the table untouched.

        Raises:
            UpstreamFailureError: The provider call failed
        """
        try:
            fetched = await self.provider.get_rates(force=force)
            metadata = await self.provider.get_metadata()
        except UpstreamFailureError as e:
            logger.error("rate_refresh_failed", error=e.message)
            raise UpstreamFailureError(
                f"failed to refresh currency rates: {e.message}", **e.context
            ) from e
        except Exception as e:
            # Any provider failure counts as upstream
            logger.error("rate_refresh_failed", error=repr(e))
            raise UpstreamFailureError(
                f"failed to refresh currency rates: {e!r}",
                source=type(self.provider).__name__,
            ) from e

        rates: dict[str, Decimal] = {}
        for code, rate in fetched.items():
            try:
                code = normalize_currency(code)
                rate = to_decimal(rate)
            except InvalidArgumentError:
                logger.warning("rate_ignored", currency=str(code), rate=str(rate))
                continue
            if not rate.is_finite() or rate <= 0:
                logger.warning("rate_ignored", currency=code, rate=str(rate))
                continue
            rates[code] = rate
        rates[self.base_currency] = Decimal("1")

        now = utcnow()
        if self.repository is not None:
            await self.repository.upsert_rates(rates, self.base_currency, now, metadata.source)

        table = dict(self._rates)
        for code, rate in rates.items():
            table[code] = RateEntry(code, rate, now)
        self._rates = table
        self._metadata = RateMetadata(last_updated=now, source=metadata.source)

        logger.info("rates_refreshed", count=len(rates), source=metadata.source)

    def start_periodic_updates(self, interval_seconds: int) -> None:
        if self._task is not None:
            self._task.cancel()
        self._task = asyncio.create_task(self._run_periodic(interval_seconds))
        logger.info("periodic_rate_updates_started", interval_seconds=interval_seconds)

    async def stop_periodic_updates(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("periodic_rate_updates_stopped")

    async def _run_periodic(self, interval_seconds: int) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                await self.refresh_rates()
            except Exception as e:
                # Keep serving the last good table; try again next tick
                logger.error("periodic_rate_refresh_failed", error=str(e))

    # --- Conversion ---

    def _rate_for(self, table: dict[str, RateEntry], code: str) -> Decimal:
        entry = table.get(code)
        if entry is None:
            raise CurrencyNotFoundError(code)
        return entry.rate

    def convert(self, amount: Number, from_currency: str, to_currency: str) -> Decimal:
        """Convert through the base currency, rounded half-up to 2 places.

        Same currency returns the amount unchanged without a lookup.

        Raises:
            InvalidArgumentError: Negative amount or malformed code
            CurrencyNotFoundError: Either code is not in the table
        """
        value = to_decimal(amount)
        if value < 0:
            raise InvalidArgumentError("Amount must be non-negative", amount=str(value))

        source = normalize_currency(from_currency)
        target = normalize_currency(to_currency)
        if source == target:
            return value

        table = self._rates
        from_rate = self._rate_for(table, source)
        to_rate = self._rate_for(table, target)
        return round_money(value / from_rate * to_rate)

    # --- Accessors ---

    def get_rate(self, code: str) -> CurrencyRate:
        code = normalize_currency(code)
        entry = self._rates.get(code)
        if entry is None:
            raise CurrencyNotFoundError(code)
        return CurrencyRate(code=entry.code, rate=float(entry.rate), last_updated=entry.last_updated)

    def get_all_rates(self) -> list[CurrencyRate]:
        """Base currency first, then alphabetical."""
        entries = sorted(
            self._rates.values(),
            key=lambda e: (e.code != self.base_currency, e.code),
        )
        return [
            CurrencyRate(code=e.code, rate=float(e.rate), last_updated=e.last_updated)
            for e in entries
        ]

    def get_metadata(self) -> RateMetadata:
        return self._metadata

    # --- Manual administration ---

    async def set_rate(self, code: str, rate: Number, source: str = "manual") -> CurrencyRate:
        code = normalize_currency(code)
        value = to_decimal(rate)
        if code == self.base_currency:
            raise InvalidArgumentError(
                "Base currency and target currency must be different", currency=code
            )
        if value <= 0:
            raise InvalidArgumentError("Rate must be positive", currency=code, rate=str(value))

        now = utcnow()
        if self.repository is not None:
            await self.repository.upsert_rates({code: value}, self.base_currency, now, source)

        table = dict(self._rates)
        table[code] = RateEntry(code, value, now)
        self._rates = table
        self._metadata = RateMetadata(last_updated=now, source=source)

        logger.info("rate_set", base=self.base_currency, currency=code, rate=str(value), source=source)
        return self.get_rate(code)

    async def delete_rate(self, code: str) -> None:
        code = normalize_currency(code)
        if code == self.base_currency:
            raise InvalidArgumentError("Cannot delete default currency", currency=code)
        if code not in self._rates:
            raise CurrencyNotFoundError(code)

        if self.repository is not None:
            await self.repository.delete(code)

        table = dict(self._rates)
        del table[code]
        self._rates = table
        logger.info("rate_deleted", base=self.base_currency, currency=code)

    async def get_rate_history(
        self,
        base_currency: Optional[str] = None,
        target_currency: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> RateHistoryPage:
        if self.repository is None:
            return RateHistoryPage(history=[], total=0)

        rows, total = await self.repository.history(
            base_currency=normalize_currency(base_currency) if base_currency else None,
            target_currency=normalize_currency(target_currency) if target_currency else None,
            start_date=start_date,
            end_date=end_date,
            limit=limit,
            offset=offset,
        )
        return RateHistoryPage(
            history=[
                RateHistoryEntry(
                    base_currency=row.base_currency,
                    target_currency=row.target_currency,
                    rate=float(row.rate),
                    source=row.source,
                    recorded_at=row.recorded_at,
                )
                for row in rows
            ],
            total=total,
        )
