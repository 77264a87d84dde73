"""Decimal helpers shared by the resolver and the rate converter."""

from __future__ import annotations

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

from src.errors import InvalidArgumentError

CENTS = Decimal("0.01")

_CURRENCY_RE = re.compile(r"^[A-Za-z]{3}$")

Number = Union[Decimal, int, float, str]


def to_decimal(value: Number) -> Decimal:
    """Coerce to Decimal without picking up binary float noise (0.85 → '0.85')."""
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise InvalidArgumentError(f"Not a number: {value!r}", value=str(value))


def round_money(value: Number) -> Decimal:
    """Two decimal places, half-up (117.647 → 117.65)."""
    return to_decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def round_whole(value: Number) -> int:
    return int(to_decimal(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def normalize_currency(code: str) -> str:
    """Validate an ISO 4217 code and return it upper-cased."""
    if not isinstance(code, str) or not _CURRENCY_RE.match(code.strip()):
        raise InvalidArgumentError(f"Invalid currency code: {code!r}", currency=str(code))
    return code.strip().upper()
