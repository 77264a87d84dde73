"""Pricing Engine — resolves the single applicable price for a product."""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Iterable, Optional

import structlog

from src.currency.converter import RateConverter
from src.errors import (
    InvalidArgumentError,
    PriceNotConfiguredError,
    PricingError,
    ProductNotFoundError,
)
from src.money import normalize_currency, round_money, round_whole, to_decimal
from src.pricing.rules import effective_base, is_on_sale, is_within_window, parse_tiers, select_tier
from src.repositories.product_price import ProductPriceRepository
from src.schemas.pricing import (
    AppliedTier,
    PriceBatch,
    PriceFailure,
    PriceOptions,
    ResolvedPrice,
)

logger = structlog.get_logger()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PricingEngine:
    """Picks a price list by priority and applies sale, tier and currency rules."""

    def __init__(
        self,
        prices: ProductPriceRepository,
        converter: RateConverter,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.prices = prices
        self.converter = converter
        self.clock = clock

    async def calculate_price(
        self,
        product_id: str,
        quantity: int = 1,
        options: Optional[PriceOptions] = None,
    ) -> ResolvedPrice:
        """Resolve the price of one product.

        Resolution order:
        1. Active price lists for the caller's groups plus the default lists,
           highest priority first
        2. The first list holding an active price for the product wins
        3. Sale price if the sale window covers now
        4. Quantity tier with the largest minimum the quantity reaches
        5. Conversion into the requested currency

        Args:
            product_id: Product id
            quantity: Units being bought (>= 1)
            options: Customer groups, target currency, variant

        Returns:
            ResolvedPrice with provenance (list, group, tier, sale)

        Raises:
            InvalidArgumentError: Bad quantity or currency code
            ProductNotFoundError: The product has no prices at all
            PriceNotConfiguredError: No eligible list prices the product
        """
        options = options or PriceOptions()
        target_currency = self._validate(quantity, options)
        now = self.clock()

        price_lists = self._rank_price_lists(
            await self.prices.find_candidate_price_lists(options.customer_group_ids, now),
            options.customer_group_ids,
            now,
        )
        rows = await self.prices.find_prices(
            [pl.id for pl in price_lists], [product_id], options.variant_id
        )

        rows = [row for row in rows if row.product_id == product_id]
        match = self._pick_price(price_lists, rows, options.variant_id)
        if match is None:
            known = await self.prices.find_known_products([product_id])
            if product_id not in known:
                raise ProductNotFoundError(product_id)
            raise PriceNotConfiguredError(product_id, options.variant_id)

        price_list, product_price = match
        result = self._build_result(price_list, product_price, quantity, target_currency, now)

        logger.info(
            "price_resolved",
            product_id=product_id,
            quantity=quantity,
            price_list_id=result.price_list_id,
            price=result.price,
            currency=result.currency,
            on_sale=result.on_sale,
            tier=result.applied_tier.min_quantity if result.applied_tier else None,
        )
        return result

    async def calculate_prices(
        self,
        product_ids: list[str],
        quantity: int = 1,
        options: Optional[PriceOptions] = None,
    ) -> PriceBatch:
        """Resolve many products with bulk lookups.

        A product that cannot be priced is left out of ``prices`` and
        reported in ``errors``; it never aborts the rest of the batch.
        Argument errors apply to every product and are raised.
        """
        options = options or PriceOptions()
        target_currency = self._validate(quantity, options)
        now = self.clock()

        unique_ids = list(dict.fromkeys(product_ids))
        batch = PriceBatch()
        if not unique_ids:
            return batch

        price_lists = self._rank_price_lists(
            await self.prices.find_candidate_price_lists(options.customer_group_ids, now),
            options.customer_group_ids,
            now,
        )
        rows = await self.prices.find_prices(
            [pl.id for pl in price_lists], unique_ids, options.variant_id
        )

        rows_by_product: dict[str, list[Any]] = defaultdict(list)
        for row in rows:
            rows_by_product[row.product_id].append(row)

        unmatched: list[str] = []
        for product_id in unique_ids:
            match = self._pick_price(price_lists, rows_by_product.get(product_id, []), options.variant_id)
            if match is None:
                unmatched.append(product_id)
                continue
            try:
                batch.prices[product_id] = self._build_result(
                    match[0], match[1], quantity, target_currency, now
                )
            except PricingError as e:
                self._record_failure(batch, product_id, e)

        if unmatched:
            known = await self.prices.find_known_products(unmatched)
            for product_id in unmatched:
                error: PricingError = (
                    PriceNotConfiguredError(product_id, options.variant_id)
                    if product_id in known
                    else ProductNotFoundError(product_id)
                )
                self._record_failure(batch, product_id, error)

        logger.info(
            "prices_resolved",
            requested=len(unique_ids),
            resolved=len(batch.prices),
            failed=len(batch.errors),
            quantity=quantity,
        )
        return batch

    def _record_failure(self, batch: PriceBatch, product_id: str, error: PricingError) -> None:
        logger.warning("price_resolution_failed", product_id=product_id, error=error.code)
        batch.errors[product_id] = PriceFailure(code=error.code, message=error.message)

    def _validate(self, quantity: int, options: PriceOptions) -> Optional[str]:
        """Check arguments; return the normalized target currency."""
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise InvalidArgumentError(
                f"Quantity must be a positive integer, got {quantity!r}",
                quantity=quantity,
            )
        if options.currency is None:
            return None
        return normalize_currency(options.currency)

    def _rank_price_lists(
        self,
        price_lists: Iterable[Any],
        customer_group_ids: list[str],
        now: datetime,
    ) -> list[Any]:
        """Eligible lists, best first.

        Order: priority desc, then group lists before default lists, then
        the caller's group preference order.
        """
        preference = {token: index for index, token in enumerate(customer_group_ids)}

        def group_rank(price_list: Any) -> Optional[int]:
            if price_list.customer_group_id is None:
                return len(preference)
            group = getattr(price_list, "customer_group", None)
            tokens = [str(price_list.customer_group_id)]
            if group is not None:
                tokens.append(group.slug)
            ranks = [preference[t] for t in tokens if t in preference]
            return min(ranks) if ranks else None

        ranked = []
        for price_list in price_lists:
            if not price_list.is_active:
                continue
            if not is_within_window(price_list.start_date, price_list.end_date, now):
                continue
            rank = group_rank(price_list)
            if rank is None:
                continue
            ranked.append((-price_list.priority, price_list.customer_group_id is None, rank, price_list))

        ranked.sort(key=lambda item: item[:3])
        return [item[3] for item in ranked]

    def _pick_price(
        self,
        price_lists: list[Any],
        rows: list[Any],
        variant_id: Optional[str],
    ) -> Optional[tuple[Any, Any]]:
        """First ranked list with an active price; a variant row beats the product row."""
        by_list: dict[Any, dict[Optional[str], Any]] = defaultdict(dict)
        for row in rows:
            if row.is_active and row.variant_id in (None, variant_id):
                by_list[row.price_list_id][row.variant_id] = row

        for price_list in price_lists:
            candidates = by_list.get(price_list.id)
            if not candidates:
                continue
            row = candidates.get(variant_id) or candidates.get(None)
            if row is not None:
                return price_list, row
        return None

    def _build_result(
        self,
        price_list: Any,
        product_price: Any,
        quantity: int,
        target_currency: Optional[str],
        now: datetime,
    ) -> ResolvedPrice:
        base_price = to_decimal(product_price.base_price)
        on_sale = is_on_sale(product_price, now)

        tier = select_tier(parse_tiers(product_price.tiered_prices), quantity)
        effective = tier.price if tier else effective_base(product_price, now)

        list_currency = price_list.currency
        currency = target_currency or list_currency

        def render(amount: Decimal) -> float:
            if currency == list_currency:
                return float(round_money(amount))
            return float(self.converter.convert(amount, list_currency, currency))

        discount = None
        if on_sale and base_price > 0:
            # Reflects the sale discount only, never the tier discount
            sale_price = to_decimal(product_price.sale_price)
            discount = round_whole((base_price - sale_price) / base_price * 100)

        return ResolvedPrice(
            price=render(effective),
            original_price=render(base_price),
            currency=currency,
            on_sale=on_sale,
            price_list_id=str(price_list.id),
            customer_group_id=(
                str(price_list.customer_group_id) if price_list.customer_group_id else None
            ),
            applied_tier=(
                AppliedTier(min_quantity=tier.min_quantity, price=render(tier.price), label=tier.label)
                if tier
                else None
            ),
            discount_percentage=discount,
        )
