"""
Pytest configuration and fixtures
"""

import json
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool
from typing import AsyncGenerator

from models.base import Base
from models.product import Product  # noqa: F401 - registers the table
from models.checkpoint import SyncCheckpoint  # noqa: F401 - registers the table
from ingestion.storage.asset_store import LocalAssetStore

ASSET_PUBLIC_URL = "https://assets.catalog.test"


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """SQLite database file per test"""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        echo=False,
        poolclass=NullPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests"""
    session_maker = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )

    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
def asset_store(tmp_path):
    """Local asset store under the test's temp directory"""
    return LocalAssetStore(str(tmp_path / "assets"), ASSET_PUBLIC_URL)


@pytest.fixture
def checkpoint_dir(tmp_path):
    return str(tmp_path / "checkpoints")


@pytest.fixture
def cosmos_product():
    """One product as returned inside a Cosmos category page"""
    return {
        "gtin": 7891000100103,
        "description": "Biscoito Recheado Chocolate 140g",
        "thumbnail": "https://cdn-cosmos.bluesoft.com.br/products/7891000100103",
        "barcode_image": "https://api.cosmos.bluesoft.com.br/products/barcode/7891000100103.png",
        "brand": {
            "name": "Marca Teste",
            "picture": "https://cdn-cosmos.bluesoft.com.br/brands/marca-teste"
        },
        "gpc": {"code": "10000001", "description": "Biscoitos Doces"},
        "ncm": {
            "code": "19053100",
            "description": "Bolachas e biscoitos adicionados de edulcorante",
            "full_description": "Produtos de padaria - Bolachas e biscoitos",
            "ex": None
        },
        "cest": {"id": 1230, "code": "1706200", "description": "Biscoitos e bolachas", "parent_id": 17},
        "category": {"id": 101, "description": "Alimentos", "parent_id": 1},
        "gtins": [
            {"gtin": 7891000100103, "commercial_unit": {"type_packaging": "Pacote", "quantity_packaging": 1}}
        ],
        "net_weight": 140,
        "gross_weight": 150,
        "width": 10.5,
        "height": 4.0,
        "length": 18.0,
        "price": "R$ 3,49 a R$ 4,99",
        "min_price": 3.49,
        "max_price": 4.99,
        "avg_price": 4.1,
        "origin": "Brasil",
        "created_at": "2021-03-10T12:00:00.000Z",
        "updated_at": "2024-02-01T08:30:00.000Z",
    }


@pytest.fixture
def cosmos_page(cosmos_product):
    """Last page of a Cosmos category listing"""
    return {
        "code": "10000001",
        "english_description": "Biscuits Cookies Sweet",
        "portuguese": "Biscoitos Doces",
        "current_page": 1,
        "next_page": None,
        "products": [cosmos_product],
    }


@pytest.fixture
def off_record():
    """One OpenFoodFacts dump record from Brazil"""
    return {
        "_id": "7891000100103",
        "code": "7891000100103",
        "product_name": "Rice",
        "product_name_pt": "Arroz Branco Tipo 1",
        "brands": "Marca Boa, Grupo Alimentos",
        "countries_tags": ["en:brazil"],
        "categories": "Cereais, Arroz",
        "categories_tags": ["en:cereals", "en:rices"],
        "quantity": "1 kg",
        "product_quantity": "1",
        "product_quantity_unit": "kg",
        "image_front_url": "https://images.openfoodfacts.org/images/products/789/100/010/0103/front_pt.jpg",
        "ingredients_text": "Arroz",
        "allergens_tags": [],
        "ingredients_analysis_tags": ["en:vegan", "en:vegetarian"],
        "labels_tags": ["en:no-gluten"],
    }


@pytest.fixture
def make_jsonl(tmp_path):
    """Write a dump file; dicts are JSON-encoded, strings written as-is"""
    def _write(lines, name="products.jsonl"):
        path = tmp_path / name
        with open(path, "w", encoding="utf-8") as f:
            for line in lines:
                f.write((line if isinstance(line, str) else json.dumps(line)) + "\n")
        return str(path)
    return _write
