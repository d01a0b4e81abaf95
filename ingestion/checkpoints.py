"""
Checkpoint persistence for resumable syncs.

Backends:
- FileCheckpointStore: one JSON document per source key on local disk,
  written to a temp file and atomically renamed over the previous one
- DatabaseCheckpointStore: one row per source key in sync_checkpoints

No locking: a source key is synced by a single process at a time.
"""

import json
import os
import re
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Optional
import logging

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import Settings, settings as default_settings
from core.exceptions import CheckpointError
from models.checkpoint import SyncCheckpoint
from schemas.pipeline import Checkpoint

logger = logging.getLogger(__name__)


class CheckpointStore(ABC):
    """Durable resumption state, keyed by source"""

    @abstractmethod
    async def load(self, source_key: str) -> Optional[Checkpoint]:
        """
        Return the saved checkpoint, or None if the key was never saved.

        Raises:
            CheckpointError: If saved state exists but cannot be read
        """
        pass

    @abstractmethod
    async def save(self, checkpoint: Checkpoint) -> None:
        """
        Persist a checkpoint, replacing the previous one for its key.

        Raises:
            CheckpointError: If the checkpoint cannot be written
        """
        pass


class FileCheckpointStore(CheckpointStore):
    """
    JSON checkpoint documents in a directory.

    A crash during save leaves the previous document intact: the new state is
    written and fsynced to a sibling temp file first, then os.replace()d.
    """

    def __init__(self, directory: str):
        self.directory = Path(directory)

    def path_for(self, source_key: str) -> Path:
        name = re.sub(r"[^A-Za-z0-9_.-]+", "-", source_key).strip("-") or "default"
        return self.directory / f"{name}.json"

    async def load(self, source_key: str) -> Optional[Checkpoint]:
        path = self.path_for(source_key)
        if not path.exists():
            return None

        try:
            with open(path, "r", encoding="utf-8") as f:
                checkpoint = Checkpoint.model_validate(json.load(f))
        except (OSError, ValueError, ValidationError) as e:
            raise CheckpointError(
                "Failed to read checkpoint",
                context={"source_key": source_key, "path": str(path), "operation": "load"},
                original_exception=e
            )

        if checkpoint.source_key != source_key:
            raise CheckpointError(
                "Checkpoint belongs to another source",
                context={
                    "source_key": source_key,
                    "path": str(path),
                    "found_source_key": checkpoint.source_key,
                    "operation": "load"
                }
            )
        return checkpoint

    async def save(self, checkpoint: Checkpoint) -> None:
        path = self.path_for(checkpoint.source_key)
        tmp_path = path.with_name(f".{path.name}.tmp")
        checkpoint = checkpoint.model_copy(update={"updated_at": datetime.utcnow()})

        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                f.write(checkpoint.model_dump_json(indent=2))
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        except OSError as e:
            raise CheckpointError(
                "Failed to write checkpoint",
                context={
                    "source_key": checkpoint.source_key,
                    "path": str(path),
                    "position": checkpoint.position,
                    "operation": "save"
                },
                original_exception=e
            )

        logger.debug(f"Checkpoint saved for {checkpoint.source_key}: position={checkpoint.position}")


class DatabaseCheckpointStore(CheckpointStore):
    """Checkpoint rows in the sync_checkpoints table"""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def _get_row(self, source_key: str) -> Optional[SyncCheckpoint]:
        result = await self.db.execute(
            select(SyncCheckpoint).where(SyncCheckpoint.source_key == source_key)
        )
        return result.scalar_one_or_none()

    async def load(self, source_key: str) -> Optional[Checkpoint]:
        try:
            row = await self._get_row(source_key)
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise CheckpointError(
                "Failed to read checkpoint",
                context={"source_key": source_key, "operation": "load"},
                original_exception=e
            )

        if row is None:
            return None
        return Checkpoint(
            source_key=row.source_key,
            position=row.position,
            cursor=row.cursor,
            updated_at=row.updated_at
        )

    async def save(self, checkpoint: Checkpoint) -> None:
        now = datetime.utcnow()
        try:
            row = await self._get_row(checkpoint.source_key)
            if row is None:
                row = SyncCheckpoint(
                    source_key=checkpoint.source_key,
                    total_saves=0,
                    created_at=now
                )
                self.db.add(row)

            row.position = checkpoint.position
            row.cursor = checkpoint.cursor
            row.total_saves = (row.total_saves or 0) + 1
            row.updated_at = now
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise CheckpointError(
                "Failed to write checkpoint",
                context={
                    "source_key": checkpoint.source_key,
                    "position": checkpoint.position,
                    "operation": "save"
                },
                original_exception=e
            )


def get_checkpoint_store(db_session: AsyncSession, config: Optional[Settings] = None) -> CheckpointStore:
    """Factory for the configured checkpoint backend (CHECKPOINT_BACKEND)"""
    config = config or default_settings
    if config.CHECKPOINT_BACKEND.lower() == "database":
        return DatabaseCheckpointStore(db_session)
    return FileCheckpointStore(config.CHECKPOINT_DIR)
