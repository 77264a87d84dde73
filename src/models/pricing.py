"""Price lists and product prices — priority-ranked, per customer group."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.models.base import Base, UUIDMixin, TimestampMixin


class CustomerGroup(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "customer_groups"

    slug: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    price_lists = relationship("PriceList", back_populates="customer_group")


class PriceList(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "price_lists"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    # NULL = default list, eligible for every caller
    customer_group_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("customer_groups.id"), nullable=True
    )

    priority: Mapped[int] = mapped_column(Integer, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Validity window (NULL = unbounded)
    start_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    end_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Relationships
    customer_group = relationship("CustomerGroup", back_populates="price_lists")
    product_prices = relationship(
        "ProductPrice", back_populates="price_list", cascade="all, delete-orphan"
    )


class ProductPrice(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "product_prices"
    __table_args__ = (
        UniqueConstraint("price_list_id", "product_id", "variant_id", name="uq_product_price"),
        # Product-level rows (NULL variant) are not covered by the constraint above
        Index(
            "uq_product_price_no_variant",
            "price_list_id",
            "product_id",
            unique=True,
            postgresql_where=text("variant_id IS NULL"),
        ),
    )

    price_list_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("price_lists.id", ondelete="CASCADE"), nullable=False
    )
    product_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    variant_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # Amounts are in the owning list's currency
    base_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    sale_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    sale_start_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    sale_end_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # [{"min_quantity": 10, "price": "80.00", "label": "Bulk"}, ...]
    tiered_prices: Mapped[List[dict]] = mapped_column(JSONB, default=list)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Relationships
    price_list = relationship("PriceList", back_populates="product_prices")
