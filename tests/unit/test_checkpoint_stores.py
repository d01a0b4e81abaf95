"""
Unit tests for checkpoint stores
"""

import os

import pytest
from unittest.mock import patch

from core.config import Settings
from core.exceptions import CheckpointError
from ingestion.checkpoints import (
    DatabaseCheckpointStore,
    FileCheckpointStore,
    get_checkpoint_store,
)
from schemas.pipeline import Checkpoint


class TestFileCheckpointStore:
    """Test JSON file checkpoints"""

    @pytest.mark.asyncio
    async def test_load_without_save_returns_none(self, checkpoint_dir):
        store = FileCheckpointStore(checkpoint_dir)

        assert await store.load("openfoodfacts") is None

    @pytest.mark.asyncio
    async def test_save_and_load(self, checkpoint_dir):
        store = FileCheckpointStore(checkpoint_dir)

        await store.save(Checkpoint(source_key="cosmos:10000001", position=3, cursor="4"))
        loaded = await store.load("cosmos:10000001")

        assert loaded.position == 3
        assert loaded.cursor == "4"
        assert store.path_for("cosmos:10000001").name == "cosmos-10000001.json"

    @pytest.mark.asyncio
    async def test_save_replaces_previous(self, checkpoint_dir):
        store = FileCheckpointStore(checkpoint_dir)

        await store.save(Checkpoint(source_key="openfoodfacts", position=10))
        await store.save(Checkpoint(source_key="openfoodfacts", position=20))

        assert (await store.load("openfoodfacts")).position == 20
        assert sorted(os.listdir(checkpoint_dir)) == ["openfoodfacts.json"]

    @pytest.mark.asyncio
    async def test_failed_write_keeps_previous_checkpoint(self, checkpoint_dir):
        store = FileCheckpointStore(checkpoint_dir)
        await store.save(Checkpoint(source_key="openfoodfacts", position=10))

        with patch("ingestion.checkpoints.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(CheckpointError):
                await store.save(Checkpoint(source_key="openfoodfacts", position=20))

        assert (await store.load("openfoodfacts")).position == 10

    @pytest.mark.asyncio
    async def test_corrupt_file_raises(self, checkpoint_dir):
        store = FileCheckpointStore(checkpoint_dir)
        os.makedirs(checkpoint_dir, exist_ok=True)
        store.path_for("openfoodfacts").write_text("{truncated", encoding="utf-8")

        with pytest.raises(CheckpointError):
            await store.load("openfoodfacts")


class TestDatabaseCheckpointStore:
    """Test sync_checkpoints rows"""

    @pytest.mark.asyncio
    async def test_save_and_load(self, db_session):
        store = DatabaseCheckpointStore(db_session)

        assert await store.load("cosmos:10000001") is None

        await store.save(Checkpoint(source_key="cosmos:10000001", position=1, cursor="2"))
        await store.save(Checkpoint(source_key="cosmos:10000001", position=2, cursor=None))
        loaded = await store.load("cosmos:10000001")

        assert loaded.position == 2
        assert loaded.cursor is None
        row = await store._get_row("cosmos:10000001")
        assert row.total_saves == 2


def test_checkpoint_backend_selection(checkpoint_dir):
    file_settings = Settings(CHECKPOINT_BACKEND="file", CHECKPOINT_DIR=checkpoint_dir)
    db_settings = Settings(CHECKPOINT_BACKEND="database")

    assert isinstance(get_checkpoint_store(None, file_settings), FileCheckpointStore)
    assert isinstance(get_checkpoint_store(None, db_settings), DatabaseCheckpointStore)
