"""
Load canonical products into the relational store, keyed by barcode.

Two strategies with different idempotence semantics:
- UpsertLoader: per-record lookup, then update or insert. Used by the
  catalog API flow, which enriches existing rows (images, pricing).
- BulkInsertLoader: one INSERT ... ON CONFLICT (barcode) DO NOTHING per
  batch. Used by the file flow, which only back-fills new rows.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional
import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from core.exceptions import PersistenceError, BatchPersistenceError
from models.product import Product, IMAGE_FIELDS
from schemas.normalized import ProductCreate
from schemas.pipeline import LoadResult

logger = logging.getLogger(__name__)


class BatchLoader(ABC):
    """Persistence strategy for one batch of products"""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def lookup(self, barcode: str) -> Optional[Product]:
        """
        Read a product by its unique barcode.

        Raises:
            PersistenceError: If the read fails
        """
        try:
            result = await self.db.execute(
                select(Product).where(Product.barcode == barcode)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise PersistenceError(
                "Lookup by barcode failed",
                context={"barcode": barcode, "operation": "SELECT", "table_name": "products"},
                original_exception=e
            )

    @abstractmethod
    async def load(self, items: List[ProductCreate]) -> LoadResult:
        """
        Persist a batch.

        Returns:
            LoadResult with inserted, updated and skipped counts
        """
        pass


class UpsertLoader(BatchLoader):
    """
    Insert-or-update per product, each in its own transaction.

    Ensures:
    - One row per barcode; later records override non-image fields
    - A stored image URL is never replaced by None
    - A failing product is rolled back alone and counted as skipped
    """

    async def load(self, items: List[ProductCreate]) -> LoadResult:
        result = LoadResult()
        if not items:
            return result

        for item in items:
            try:
                created = await self._upsert(item)
            except SQLAlchemyError as e:
                await self.db.rollback()
                error = PersistenceError(
                    f"Failed to save product {item.barcode}",
                    context={"barcode": item.barcode, "table_name": "products"},
                    original_exception=e
                )
                logger.warning(str(error))
                result.skipped += 1
                continue

            if created:
                result.inserted += 1
            else:
                result.updated += 1

        logger.info(
            f"Upserted batch of {len(items)}: inserted={result.inserted}, "
            f"updated={result.updated}, skipped={result.skipped}"
        )
        return result

    async def _upsert(self, item: ProductCreate) -> bool:
        """Write one product, returns True when a new row was created"""
        now = datetime.utcnow()
        values = item.to_row()

        existing = (await self.db.execute(
            select(Product).where(Product.barcode == item.barcode)
        )).scalar_one_or_none()

        if existing is None:
            self.db.add(Product(**values, synced_at=now))
            await self.db.commit()
            return True

        for field, value in values.items():
            if field in IMAGE_FIELDS and value is None:
                continue
            setattr(existing, field, value)
        existing.synced_at = now
        existing.updated_at = now
        await self.db.commit()
        return False


class BulkInsertLoader(BatchLoader):
    """
    Append-only bulk insert that skips barcodes already stored.

    Existing rows are never touched. A statement failure rolls back the
    whole batch and raises BatchPersistenceError.
    """

    def _insert(self):
        dialect = self.db.get_bind().dialect.name
        if dialect == "sqlite":
            return sqlite_insert(Product)
        return pg_insert(Product)

    async def load(self, items: List[ProductCreate]) -> LoadResult:
        if not items:
            return LoadResult()

        now = datetime.utcnow()
        rows = [
            {**item.to_row(), "synced_at": now, "created_at": now, "updated_at": now}
            for item in items
        ]

        stmt = (
            self._insert()
            .values(rows)
            .on_conflict_do_nothing(index_elements=["barcode"])
            .returning(Product.barcode)
        )

        try:
            inserted = len((await self.db.execute(stmt)).scalars().all())
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise BatchPersistenceError(
                "Bulk insert failed",
                context={
                    "batch_size": len(items),
                    "operation": "BULK_INSERT",
                    "table_name": "products"
                },
                original_exception=e
            )

        result = LoadResult(inserted=inserted, skipped=len(items) - inserted)
        logger.info(f"Bulk inserted {inserted}/{len(items)} products (duplicates skipped: {result.skipped})")
        return result
