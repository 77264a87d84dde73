"""Tests for product price administration (import, bulk update, set)."""

import uuid
from contextlib import asynccontextmanager
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import IntegrityError

from src.errors import InvalidArgumentError, ProductPriceNotFoundError
from src.models.pricing import ProductPrice
from src.repositories.product_price import ProductPriceRepository
from src.schemas.pricing import BulkUpdateItem, ProductPriceInput

LIST_ID = str(uuid.uuid4())


@asynccontextmanager
async def _savepoint():
    yield


@pytest.fixture
def db():
    """Mock AsyncSession; savepoints are no-op context managers."""
    session = AsyncMock()
    session.add = MagicMock()
    session.begin_nested = MagicMock(side_effect=lambda: _savepoint())
    return session


@pytest.fixture
def repo(db):
    return ProductPriceRepository(db)


class TestImportPrices:
    @pytest.mark.asyncio
    async def test_counts_created_skipped_and_failed(self, repo, db):
        existing = MagicMock(base_price=Decimal("10"))
        repo._find_existing = AsyncMock(side_effect=[None, existing, None])
        rows = [
            ProductPriceInput(price_list_id=LIST_ID, product_id="new", base_price=5),
            ProductPriceInput(price_list_id=LIST_ID, product_id="old", base_price=7),
            ProductPriceInput(price_list_id=LIST_ID, base_price=1),
            ProductPriceInput(price_list_id="not-a-uuid", product_id="bad", base_price=1),
        ]

        result = await repo.import_prices(rows)

        assert result.created == 1
        assert result.updated == 0
        assert result.failed == 3
        assert existing.base_price == Decimal("10")
        db.add.assert_called_once()

    @pytest.mark.asyncio
    async def test_update_existing_with_default_list(self, repo):
        existing = MagicMock(base_price=Decimal("10"))
        repo._find_existing = AsyncMock(return_value=existing)

        result = await repo.import_prices(
            [ProductPriceInput(product_id="old", base_price=12)],
            update_existing=True,
            price_list_id=LIST_ID,
        )

        assert result.updated == 1
        assert existing.base_price == Decimal("12")
        assert existing.price_list_id == uuid.UUID(LIST_ID)

    @pytest.mark.asyncio
    async def test_tiers_are_stored_as_json(self, repo, db):
        repo._find_existing = AsyncMock(return_value=None)

        await repo.import_prices(
            [
                ProductPriceInput(
                    price_list_id=LIST_ID,
                    product_id="p",
                    base_price=10,
                    tiered_prices=[{"quantity": 10, "price": "9.5"}],
                )
            ]
        )

        created = db.add.call_args.args[0]
        assert created.tiered_prices == [{"min_quantity": 10, "price": "9.5", "label": None}]
        assert created.is_active is True


class TestBulkUpdate:
    @pytest.mark.asyncio
    async def test_partial_failure(self, repo):
        price = MagicMock(sale_price=None)
        missing_id = str(uuid.uuid4())
        repo.get = AsyncMock(side_effect=[price, None])

        result = await repo.bulk_update(
            [
                BulkUpdateItem(id=str(uuid.uuid4()), changes=ProductPriceInput(sale_price=8)),
                BulkUpdateItem(id=missing_id, changes=ProductPriceInput(sale_price=8)),
            ]
        )

        assert result.updated == 1
        assert result.failed == 1
        assert result.failures[0].id == missing_id
        assert price.sale_price == Decimal("8")

    @pytest.mark.asyncio
    async def test_fail_on_error_raises(self, repo):
        repo.get = AsyncMock(return_value=None)

        with pytest.raises(ProductPriceNotFoundError):
            await repo.bulk_update(
                [BulkUpdateItem(id="missing", changes=ProductPriceInput(base_price=1))],
                fail_on_error=True,
            )


class TestSetPrice:
    @pytest.mark.asyncio
    async def test_unknown_id(self, repo):
        repo.get = AsyncMock(return_value=None)

        with pytest.raises(ProductPriceNotFoundError):
            await repo.set_price(ProductPriceInput(id=str(uuid.uuid4()), base_price=1))

    @pytest.mark.asyncio
    async def test_create_requires_base_price(self, repo):
        repo._find_existing = AsyncMock(return_value=None)

        with pytest.raises(InvalidArgumentError):
            await repo.set_price(ProductPriceInput(price_list_id=LIST_ID, product_id="p"))

    @pytest.mark.asyncio
    async def test_updates_only_sent_fields(self, repo, db):
        price = MagicMock(base_price=Decimal("10"), sale_price=Decimal("8"))
        repo._find_existing = AsyncMock(return_value=price)

        await repo.set_price(ProductPriceInput(id=str(uuid.uuid4()), base_price=11))

        assert price.base_price == Decimal("11")
        assert price.sale_price == Decimal("8")
        db.flush.assert_awaited_once()


class TestImportDatabaseErrors:
    @pytest.mark.asyncio
    async def test_database_error_fails_only_that_row(self, repo, db):
        repo._find_existing = AsyncMock(return_value=None)
        db.flush = AsyncMock(
            side_effect=[IntegrityError("INSERT INTO product_prices", {}, Exception("fk")), None]
        )
        rows = [
            ProductPriceInput(price_list_id=LIST_ID, product_id="orphan", base_price=5),
            ProductPriceInput(price_list_id=LIST_ID, product_id="ok", base_price=6),
        ]

        result = await repo.import_prices(rows)

        assert result.created == 1
        assert result.failed == 1
        assert db.flush.await_count == 2


class TestProductPriceConstraints:
    def test_one_product_level_row_per_list(self):
        index = next(
            i for i in ProductPrice.__table__.indexes if i.name == "uq_product_price_no_variant"
        )

        assert index.unique is True
        assert [c.name for c in index.columns] == ["price_list_id", "product_id"]
        assert "variant_id IS NULL" in str(index.dialect_options["postgresql"]["where"])
