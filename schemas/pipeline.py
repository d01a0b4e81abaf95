"""
Pydantic schemas for pipeline state: checkpoints, normalization results,
batch load results and run summaries.
"""

from pydantic import BaseModel, Field
from typing import Optional, Dict, Any
from datetime import datetime
import enum

from models.base import RunState, StopReason
from schemas.normalized import ProductCreate


class Checkpoint(BaseModel):
    """
    Durable resumption marker for one source stream.

    position is the last fully processed page (paginated source) or line
    (file source); 0 means nothing processed yet. cursor is the opaque
    next-page cursor returned by the paginated source, None once exhausted.
    """

    source_key: str
    position: int = Field(0, ge=0)
    cursor: Optional[str] = None
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    def same_position(self, other: Optional["Checkpoint"]) -> bool:
        return (
            other is not None
            and self.position == other.position
            and self.cursor == other.cursor
        )


class NormalizationStatus(str, enum.Enum):
    NORMALIZED = "normalized"
    REJECTED = "rejected"
    FAILED = "failed"


class NormalizationResult(BaseModel):
    """Outcome of normalizing one raw record"""

    status: NormalizationStatus
    product: Optional[ProductCreate] = None
    reason: Optional[str] = None

    @classmethod
    def ok(cls, product: ProductCreate) -> "NormalizationResult":
        return cls(status=NormalizationStatus.NORMALIZED, product=product)

    @classmethod
    def rejected(cls, reason: str) -> "NormalizationResult":
        return cls(status=NormalizationStatus.REJECTED, reason=reason)

    @classmethod
    def failed(cls, reason: str) -> "NormalizationResult":
        return cls(status=NormalizationStatus.FAILED, reason=reason)

    @property
    def is_ok(self) -> bool:
        return self.status == NormalizationStatus.NORMALIZED


class LoadResult(BaseModel):
    """Counts returned by a batch loader"""

    inserted: int = 0
    updated: int = 0
    skipped: int = 0


class RunSummary(BaseModel):
    """
    Counters for one pipeline run.

    skipped aggregates rejected records, records the loader skipped
    (duplicates, per-record failures) and every record of a failed batch.
    """

    source_key: str
    state: RunState = RunState.INIT
    stop_reason: Optional[StopReason] = None

    records_scanned: int = 0
    malformed: int = 0
    candidates: int = 0
    normalized: int = 0
    rejected: int = 0
    inserted: int = 0
    updated: int = 0
    skipped: int = 0

    batches_flushed: int = 0
    batches_failed: int = 0

    checkpoint: Optional[Checkpoint] = None
    error: Optional[Dict[str, Any]] = None

    started_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None

    def log_line(self) -> str:
        return (
            f"scanned={self.records_scanned}, malformed={self.malformed}, "
            f"candidates={self.candidates}, normalized={self.normalized}, "
            f"inserted={self.inserted}, updated={self.updated}, skipped={self.skipped}"
        )
