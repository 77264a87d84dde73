"""Sale window and quantity tier rules for a single product price."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, Optional

from src.money import to_decimal
from src.schemas.pricing import TierPrice


def _aware(value: datetime) -> datetime:
    # Naive timestamps from the DB are stored as UTC
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def is_on_sale(product_price: Any, now: datetime) -> bool:
    """Sale price applies only inside [sale_start_date, sale_end_date], both inclusive."""
    if product_price.sale_price is None:
        return False
    return is_within_window(product_price.sale_start_date, product_price.sale_end_date, now)


def is_within_window(
    start: Optional[datetime], end: Optional[datetime], now: datetime
) -> bool:
    if start is not None and _aware(start) > now:
        return False
    if end is not None and _aware(end) < now:
        return False
    return True


def effective_base(product_price: Any, now: datetime) -> Decimal:
    """Sale price while the sale runs, base price otherwise."""
    if is_on_sale(product_price, now):
        return to_decimal(product_price.sale_price)
    return to_decimal(product_price.base_price)


def parse_tiers(raw: Optional[Iterable[Any]]) -> list[TierPrice]:
    if not raw:
        return []
    return [t if isinstance(t, TierPrice) else TierPrice.model_validate(t) for t in raw]


def select_tier(tiers: list[TierPrice], quantity: int) -> Optional[TierPrice]:
    """Tier with the largest min_quantity that the quantity reaches.

    Quantity 1 never gets a tier, even when one starts at 1.
    """
    if quantity <= 1:
        return None
    eligible = [t for t in tiers if t.min_quantity <= quantity]
    if not eligible:
        return None
    return max(eligible, key=lambda t: t.min_quantity)
