"""
Unit tests for product loaders
"""

import pytest
from unittest.mock import AsyncMock, Mock, patch
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError, OperationalError

from core.exceptions import BatchPersistenceError, PersistenceError
from ingestion.loaders.product_loader import BulkInsertLoader, UpsertLoader
from models.base import SourceType
from models.product import Product
from schemas.normalized import COLUMN_LIMITS, ProductCreate


def make_product(barcode: str, name: str = "Produto", **fields) -> ProductCreate:
    return ProductCreate(barcode=barcode, name=name, source=SourceType.COSMOS, **fields)


async def count_products(session) -> int:
    return (await session.execute(select(func.count()).select_from(Product))).scalar_one()


def test_row_values_fit_bounded_columns():
    """Every bounded text column receives at most its declared length"""
    overlong = {field: "x" * (limit + 10) for field, limit in COLUMN_LIMITS.items()}

    row = make_product("789000", **overlong).to_row()

    for column in Product.__table__.columns:
        length = getattr(column.type, "length", None)
        if length and isinstance(row.get(column.name), str):
            assert len(row[column.name]) <= length, column.name
    assert "quantity_label" not in COLUMN_LIMITS
    assert "price_text" not in COLUMN_LIMITS


class TestUpsertLoader:
    """Test per-record insert-or-update"""

    @pytest.mark.asyncio
    async def test_inserts_new_products(self, db_session):
        loader = UpsertLoader(db_session)

        result = await loader.load([make_product("789001"), make_product("789002")])

        assert result.inserted == 2
        assert result.updated == 0
        assert await count_products(db_session) == 2

    @pytest.mark.asyncio
    async def test_updates_existing_row(self, db_session):
        loader = UpsertLoader(db_session)
        await loader.load([make_product("789001", name="Antigo", price_avg=3.0)])

        result = await loader.load([make_product("789001", name="Novo", price_avg=4.5)])

        assert result.inserted == 0
        assert result.updated == 1
        assert await count_products(db_session) == 1
        row = await loader.lookup("789001")
        assert row.name == "Novo"
        assert row.price_avg == 4.5

    @pytest.mark.asyncio
    async def test_none_never_overwrites_image_urls(self, db_session):
        loader = UpsertLoader(db_session)
        await loader.load([make_product(
            "789001",
            image_url="https://assets.catalog.test/products/x/789001",
            brand_image_url="https://assets.catalog.test/brands/marca"
        )])

        await loader.load([make_product(
            "789001",
            image_url=None,
            brand_image_url="https://assets.catalog.test/brands/marca-nova"
        )])

        row = await loader.lookup("789001")
        assert row.image_url == "https://assets.catalog.test/products/x/789001"
        assert row.brand_image_url == "https://assets.catalog.test/brands/marca-nova"

    @pytest.mark.asyncio
    async def test_record_failure_is_isolated(self, db_session):
        """A failing product is skipped, its siblings are saved"""
        loader = UpsertLoader(db_session)
        original = loader._upsert

        async def flaky_upsert(item):
            if item.barcode == "789002":
                raise IntegrityError("INSERT", {}, Exception("constraint violation"))
            return await original(item)

        with patch.object(loader, "_upsert", side_effect=flaky_upsert):
            result = await loader.load([
                make_product("789001"), make_product("789002"), make_product("789003")
            ])

        assert result.inserted == 2
        assert result.skipped == 1
        assert await loader.lookup("789002") is None
        assert await count_products(db_session) == 2

    @pytest.mark.asyncio
    async def test_empty_batch(self):
        mock_session = AsyncMock()
        loader = UpsertLoader(mock_session)

        result = await loader.load([])

        assert result.inserted == result.updated == result.skipped == 0
        mock_session.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_lookup_failure_raises_persistence_error(self):
        mock_session = AsyncMock()
        mock_session.execute = AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("db down")))
        loader = UpsertLoader(mock_session)

        with pytest.raises(PersistenceError):
            await loader.lookup("789001")
        mock_session.rollback.assert_called_once()


class TestBulkInsertLoader:
    """Test append-only bulk insert"""

    @pytest.mark.asyncio
    async def test_skips_existing_barcodes(self, db_session):
        loader = BulkInsertLoader(db_session)
        await loader.load([make_product("789001", name="Original")])

        result = await loader.load([
            make_product("789001", name="Duplicado"),
            make_product("789002"),
        ])

        assert result.inserted == 1
        assert result.skipped == 1
        assert result.updated == 0
        assert await count_products(db_session) == 2
        row = await loader.lookup("789001")
        assert row.name == "Original"

    @pytest.mark.asyncio
    async def test_statement_failure_raises_batch_error(self):
        mock_session = AsyncMock()
        bind = Mock()
        bind.dialect.name = "postgresql"
        mock_session.get_bind = Mock(return_value=bind)
        mock_session.execute = AsyncMock(side_effect=OperationalError("INSERT", {}, Exception("db down")))
        loader = BulkInsertLoader(mock_session)

        with pytest.raises(BatchPersistenceError):
            await loader.load([make_product("789001")])
        mock_session.rollback.assert_called_once()
