"""Pricing service exceptions.

Every error carries a stable ``code`` and the identifiers needed to build an
actionable message (which product, which currency). The HTTP layer maps the
three kinds to status codes; nothing below the API swallows them.
"""

from __future__ import annotations

from typing import Any


class PricingError(Exception):
    """Base class for all pricing service errors."""

    code = "pricing_error"

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, **self.context}


class NotFoundError(PricingError):
    code = "not_found"


class ProductNotFoundError(NotFoundError):
    code = "product_not_found"

    def __init__(self, product_id: str):
        super().__init__(f"Product {product_id} not found", product_id=product_id)
        self.product_id = product_id


class PriceNotConfiguredError(NotFoundError):
    code = "price_not_configured"

    def __init__(self, product_id: str, variant_id: str | None = None):
        super().__init__(
            f"No price configured for product {product_id}",
            product_id=product_id,
            variant_id=variant_id,
        )
        self.product_id = product_id
        self.variant_id = variant_id


class CurrencyNotFoundError(NotFoundError):
    code = "currency_not_found"

    def __init__(self, currency: str):
        super().__init__(f"Currency rate not found for {currency}", currency=currency)
        self.currency = currency


class PriceListNotFoundError(NotFoundError):
    code = "price_list_not_found"

    def __init__(self, price_list_id: str):
        super().__init__(f"Price list {price_list_id} not found", price_list_id=price_list_id)


class ProductPriceNotFoundError(NotFoundError):
    code = "product_price_not_found"

    def __init__(self, price_id: str):
        super().__init__(f"Price with ID {price_id} not found", price_id=price_id)


class CustomerGroupNotFoundError(NotFoundError):
    code = "customer_group_not_found"

    def __init__(self, customer_group_id: str):
        super().__init__(
            f"Customer group with ID {customer_group_id} not found",
            customer_group_id=customer_group_id,
        )


class InvalidArgumentError(PricingError):
    code = "invalid_argument"


class UpstreamFailureError(PricingError):
    code = "upstream_failure"
