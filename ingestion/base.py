"""
Abstract base class for catalog sources with checkpoint-aware streaming
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, Any, Optional
import enum
import logging

from models.base import SourceType
from schemas.pipeline import Checkpoint

logger = logging.getLogger(__name__)


class ItemKind(str, enum.Enum):
    RECORD = "record"
    MALFORMED = "malformed"
    MARKER = "marker"


@dataclass
class SourceItem:
    """
    One unit pulled from a source.

    position is the checkpoint that becomes valid once this item and every
    item before it have been persisted. MARKER items carry no record and only
    move the position forward (end of a page, blank line). scanned is False
    for items that do not correspond to a line or record of the source.
    """

    kind: ItemKind
    position: Checkpoint
    raw: Optional[Dict[str, Any]] = None
    context: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    scanned: bool = True

    @property
    def is_record(self) -> bool:
        return self.kind == ItemKind.RECORD


class DataSource(ABC):
    """
    Abstract base class for all catalog sources.

    Responsibilities:
    - Define the start position of the stream
    - Resume from a previously saved checkpoint
    - Yield raw records one at a time, with their resume position
    """

    def __init__(self, source_type: SourceType, source_key: str):
        self.source_type = source_type
        self.source_key = source_key

    def initial_checkpoint(self) -> Checkpoint:
        """Checkpoint used when nothing has been saved for this key yet"""
        return Checkpoint(source_key=self.source_key, position=0)

    def resume_from(self, checkpoint: Optional[Checkpoint]) -> Checkpoint:
        """Position the next run starts after"""
        if checkpoint is None:
            return self.initial_checkpoint()
        logger.info(
            f"Resuming {self.source_key} after position {checkpoint.position}"
            + (f" (cursor: {checkpoint.cursor})" if checkpoint.cursor else "")
        )
        return checkpoint

    @abstractmethod
    def stream(self, checkpoint: Checkpoint) -> AsyncIterator[SourceItem]:
        """
        Yield items after the given checkpoint.

        Args:
            checkpoint: Resume position returned by resume_from()

        Raises:
            SourceUnavailableError: If the source cannot be read
        """
        pass

    async def close(self) -> None:
        """Release resources held by the source"""
        return None
