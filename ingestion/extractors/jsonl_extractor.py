"""
Line-delimited JSON file extractor with line-number checkpoints
"""

import json
from pathlib import Path
from typing import AsyncIterator
import logging

from ingestion.base import DataSource, ItemKind, SourceItem
from models.base import SourceType
from schemas.pipeline import Checkpoint
from core.exceptions import SourceUnavailableError

logger = logging.getLogger(__name__)


class JSONLinesExtractor(DataSource):
    """
    Stream records from a UTF-8 JSON Lines dump.

    Supports:
    - Resume by line number (lines up to the checkpoint are skipped)
    - Files far larger than memory (read line by line)
    - Malformed lines reported as MALFORMED items, never raised

    The file is opened read-only and never modified.
    """

    def __init__(
        self,
        file_path: str,
        source_type: SourceType = SourceType.OPENFOODFACTS,
        source_key: str = "openfoodfacts"
    ):
        super().__init__(source_type=source_type, source_key=source_key)
        self.file_path = Path(file_path)

    def _position(self, line_number: int) -> Checkpoint:
        return Checkpoint(source_key=self.source_key, position=line_number)

    async def stream(self, checkpoint: Checkpoint) -> AsyncIterator[SourceItem]:
        """
        Yield one item per line after checkpoint.position.

        Raises:
            SourceUnavailableError: If the file cannot be opened or read
        """
        if not self.file_path.is_file():
            raise SourceUnavailableError(
                f"Input file not found: {self.file_path}",
                context={"source_name": self.source_key, "file_path": str(self.file_path)},
                status_code=500
            )

        start_after = checkpoint.position
        logger.info(f"Reading {self.file_path} starting at line {start_after + 1}")

        try:
            handle = open(self.file_path, "rb")
        except OSError as e:
            raise SourceUnavailableError(
                f"Cannot open input file: {self.file_path}",
                context={"source_name": self.source_key, "file_path": str(self.file_path)},
                original_exception=e,
                status_code=500
            )

        line_number = 0
        try:
            with handle:
                while True:
                    try:
                        line = handle.readline()
                    except OSError as e:
                        raise SourceUnavailableError(
                            f"Read failed at line {line_number + 1}",
                            context={
                                "source_name": self.source_key,
                                "file_path": str(self.file_path),
                                "line_number": line_number + 1
                            },
                            original_exception=e,
                            status_code=500
                        )
                    if not line:
                        break

                    line_number += 1
                    if line_number <= start_after:
                        continue

                    yield self._parse(line, line_number)
        finally:
            logger.debug(f"Closed {self.file_path} after line {line_number}")

    def _parse(self, line: bytes, line_number: int) -> SourceItem:
        position = self._position(line_number)
        try:
            text = line.decode("utf-8").strip()
        except UnicodeDecodeError as e:
            return SourceItem(
                kind=ItemKind.MALFORMED,
                position=position,
                error=f"line {line_number}: invalid UTF-8 at byte {e.start}"
            )

        if not text:
            return SourceItem(kind=ItemKind.MARKER, position=position)

        try:
            record = json.loads(text)
        except json.JSONDecodeError as e:
            return SourceItem(
                kind=ItemKind.MALFORMED,
                position=position,
                error=f"line {line_number}: {e.msg}"
            )

        if not isinstance(record, dict):
            return SourceItem(
                kind=ItemKind.MALFORMED,
                position=position,
                error=f"line {line_number}: expected object, got {type(record).__name__}"
            )

        return SourceItem(
            kind=ItemKind.RECORD,
            position=position,
            raw=record,
            context={"line_number": line_number}
        )
