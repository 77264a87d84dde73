"""Exchange rate providers — where the rate table comes from."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Mapping, Optional

import httpx
import structlog
from cachetools import TTLCache

from src.config import Settings
from src.errors import UpstreamFailureError
from src.schemas.currency import RateMetadata

logger = structlog.get_logger()

RATE_PLACES = Decimal("0.000001")

# USD-based defaults, rebased onto the configured base currency
DEFAULT_RATES = {
    "USD": Decimal("1"),
    "EUR": Decimal("0.85"),
    "GBP": Decimal("0.75"),
    "JPY": Decimal("110.0"),
    "CAD": Decimal("1.25"),
    "AUD": Decimal("1.35"),
}


def rebase_rates(
    rates: Mapping[str, Decimal],
    base_currency: str,
    source: str,
) -> dict[str, Decimal]:
    """Express every rate relative to ``base_currency`` (which becomes exactly 1).

    Non-positive rates are dropped.

    Raises:
        UpstreamFailureError: The base currency has no usable rate
    """
    pivot = rates.get(base_currency)
    if pivot is None or pivot <= 0:
        raise UpstreamFailureError(
            f"Failed to fetch exchange rates: no rate for base {base_currency}",
            source=source,
        )
    if pivot == 1:
        rebased = {code: rate for code, rate in rates.items() if rate > 0}
    else:
        rebased = {
            code: (rate / pivot).quantize(RATE_PLACES)
            for code, rate in rates.items()
            if rate > 0
        }
    rebased[base_currency] = Decimal("1")
    return rebased


class RateProvider(ABC):
    """Source of rates relative to a base currency."""

    @abstractmethod
    async def get_rates(self, force: bool = False) -> dict[str, Decimal]:
        """Return {currency code: rate relative to base}.

        Args:
            force: Skip any provider-side cache

        Raises:
            UpstreamFailureError: The source could not be reached or parsed
        """
        ...

    @abstractmethod
    async def get_metadata(self) -> RateMetadata:
        ...


class StaticRateProvider(RateProvider):
    """Fixed rate table, used when no rate API is configured."""

    def __init__(
        self,
        rates: Optional[Mapping[str, Decimal]] = None,
        base_currency: str = "USD",
        source: str = "static",
    ):
        self.rates = {
            code.upper(): Decimal(str(rate))
            for code, rate in (DEFAULT_RATES if rates is None else rates).items()
        }
        self.base_currency = base_currency
        self.source = source
        self._loaded_at = datetime.now(timezone.utc)

    async def get_rates(self, force: bool = False) -> dict[str, Decimal]:
        return rebase_rates(self.rates, self.base_currency, self.source)

    async def get_metadata(self) -> RateMetadata:
        return RateMetadata(last_updated=self._loaded_at, source=self.source)


class HttpRateProvider(RateProvider):
    """Fetches ``{"base": "EUR", "rates": {...}}`` from a rate API.

    The last good response is cached for ``cache_ttl`` seconds; ``force``
    bypasses the cache.
    """

    def __init__(
        self,
        url: str,
        base_currency: str,
        api_key: Optional[str] = None,
        cache_ttl: int = 300,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.base_currency = base_currency
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport
        self._cache: TTLCache[str, dict[str, Decimal]] = TTLCache(
            maxsize=1, ttl=max(cache_ttl, 1)
        )
        self._last_updated: Optional[datetime] = None

    async def get_rates(self, force: bool = False) -> dict[str, Decimal]:
        if not force and "rates" in self._cache:
            logger.debug("rate_cache_hit", source=self.url)
            return dict(self._cache["rates"])

        payload = await self._fetch()
        rates = rebase_rates(self._parse(payload), self.base_currency, self.url)

        self._cache["rates"] = rates
        self._last_updated = datetime.now(timezone.utc)
        logger.info("rates_fetched", source=self.url, count=len(rates))
        return dict(rates)

    async def get_metadata(self) -> RateMetadata:
        return RateMetadata(last_updated=self._last_updated, source=self.url)

    async def _fetch(self) -> dict:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(self.url, headers=headers)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPError as e:
            logger.error("rate_fetch_failed", source=self.url, error=str(e))
            raise UpstreamFailureError(
                f"Failed to fetch exchange rates: {e}", source=self.url
            ) from e
        except ValueError as e:
            logger.error("rate_payload_invalid", source=self.url, error=str(e))
            raise UpstreamFailureError(
                "Failed to fetch exchange rates: response is not JSON", source=self.url
            ) from e

    def _parse(self, payload: dict) -> dict[str, Decimal]:
        raw = payload.get("rates") if isinstance(payload, dict) else None
        if not isinstance(raw, dict) or not raw:
            raise UpstreamFailureError(
                "Failed to fetch exchange rates: no rates in response", source=self.url
            )

        try:
            rates = {str(code).upper(): Decimal(str(value)) for code, value in raw.items()}
        except InvalidOperation as e:
            raise UpstreamFailureError(
                "Failed to fetch exchange rates: non-numeric rate", source=self.url
            ) from e

        bad = sorted(code for code, rate in rates.items() if not rate.is_finite())
        if bad:
            raise UpstreamFailureError(
                f"Failed to fetch exchange rates: non-finite rate for {', '.join(bad)}",
                source=self.url,
            )

        # The payload's own base is implied at 1 when the API omits it
        payload_base = str(payload.get("base") or self.base_currency).upper()
        rates.setdefault(payload_base, Decimal("1"))
        return rates


def build_rate_provider(settings: Settings) -> RateProvider:
    if settings.currency_api_url:
        return HttpRateProvider(
            url=settings.currency_api_url,
            base_currency=settings.default_currency,
            api_key=settings.currency_api_key,
            cache_ttl=settings.rate_cache_ttl_seconds,
            timeout=settings.rate_provider_timeout_seconds,
        )
    logger.info("static_rate_provider_selected", base=settings.default_currency)
    return StaticRateProvider(base_currency=settings.default_currency)
