"""
Pipeline Runner - Orchestrates stream, normalize, enrich, load and checkpoint.

This module provides the per-run state machine:

    INIT -> STREAMING -> (FLUSHING_BATCH)* -> FINALIZING -> DONE
    any state -> FAILED on source or checkpoint I/O failure

Guarantees:
- The checkpoint is saved only after the batch it covers was persisted, and
  never points past a batch that failed to persist
- Per-record and per-batch failures are absorbed and counted in the summary
- Ceilings and the stop event end the run gracefully: buffered work is
  flushed and the checkpoint saved, exactly as on source exhaustion
"""

from datetime import datetime
from typing import Awaitable, Callable, List, Optional
import asyncio
import logging

from ingestion.base import DataSource, ItemKind, SourceItem
from ingestion.checkpoints import CheckpointStore
from ingestion.loaders.product_loader import BatchLoader
from ingestion.transformers.normalizer import Normalizer
from models.base import RunState, StopReason
from schemas.normalized import ProductCreate
from schemas.pipeline import Checkpoint, NormalizationStatus, RunSummary
from core.config import settings
from core.exceptions import (
    SyncException,
    ExtractionError,
    LoadError,
    CheckpointError,
    ImageResolutionError,
    PipelineAbortedError,
)

logger = logging.getLogger(__name__)

Enricher = Callable[[ProductCreate], Awaitable[ProductCreate]]


class PipelineRunner:
    """
    Single-worker orchestrator for one source stream.

    Responsibilities:
    - Load the checkpoint and resume the source after it
    - Filter, normalize and (optionally) enrich each record
    - Flush full batches to the loader and checkpoint after each success
    - Stop on exhaustion, ceilings or the external stop event
    - Report a RunSummary, also attached to PipelineAbortedError on abort
    """

    CHECKPOINT_SAVE_ATTEMPTS = 2

    def __init__(
        self,
        source: DataSource,
        normalizer: Normalizer,
        loader: BatchLoader,
        checkpoints: CheckpointStore,
        batch_size: int,
        max_scanned: Optional[int] = None,
        max_records: Optional[int] = None,
        enricher: Optional[Enricher] = None,
        stop_event: Optional[asyncio.Event] = None,
        progress_every: Optional[int] = None
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        self.source = source
        self.normalizer = normalizer
        self.loader = loader
        self.checkpoints = checkpoints
        self.batch_size = batch_size
        self.max_scanned = max_scanned
        self.max_records = max_records
        self.enricher = enricher
        self.stop_event = stop_event or asyncio.Event()
        self.progress_every = progress_every if progress_every is not None else settings.PROGRESS_EVERY

        self.summary = RunSummary(source_key=source.source_key)
        self._buffer: List[ProductCreate] = []
        self._position: Optional[Checkpoint] = None
        self._committed: Optional[Checkpoint] = None
        self._blocked = False

    async def run(self) -> RunSummary:
        """
        Execute one run.

        Returns:
            RunSummary with state DONE

        Raises:
            PipelineAbortedError: On source or checkpoint I/O failure, with
                the partial summary in ``summary``
        """
        summary = self.summary
        summary.state = RunState.INIT
        logger.info(f"Starting sync for {self.source.source_key}")

        try:
            saved = await self.checkpoints.load(self.source.source_key)
        except CheckpointError as e:
            raise self._abort(e)

        start = self.source.resume_from(saved)
        self._committed = saved if saved is not None else start
        self._position = start
        summary.checkpoint = saved

        try:
            summary.stop_reason = await self._stream(start)
        except ExtractionError as e:
            try:
                await self._flush()
            except CheckpointError as checkpoint_error:
                logger.error(f"Checkpoint not saved after source failure: {checkpoint_error.message}")
            raise self._abort(e)
        except CheckpointError as e:
            raise self._abort(e)
        except Exception:
            summary.state = RunState.FAILED
            summary.stop_reason = StopReason.ABORTED
            summary.completed_at = datetime.utcnow()
            logger.exception(f"Unexpected error in sync for {self.source.source_key}")
            raise

        summary.state = RunState.FINALIZING
        try:
            await self._flush()
        except CheckpointError as e:
            raise self._abort(e)

        summary.state = RunState.DONE
        summary.completed_at = datetime.utcnow()
        logger.info(
            f"Sync for {self.source.source_key} finished ({summary.stop_reason.value}): "
            f"{summary.log_line()}"
        )
        return summary

    async def _stream(self, start: Checkpoint) -> StopReason:
        """STREAMING phase, returns why it ended"""
        self.summary.state = RunState.STREAMING

        stop = self._stop_reason()
        if stop is not None:
            return stop

        stream = self.source.stream(start)
        try:
            async for item in stream:
                await self._consume(item)

                if len(self._buffer) >= self.batch_size:
                    await self._flush()

                stop = self._stop_reason()
                if stop is not None:
                    logger.info(f"Stopping {self.source.source_key}: {stop.value}")
                    return stop
        finally:
            await stream.aclose()
            await self.source.close()

        return StopReason.EXHAUSTED

    async def _consume(self, item: SourceItem) -> None:
        summary = self.summary

        if item.scanned:
            summary.records_scanned += 1
            if self.progress_every and summary.records_scanned % self.progress_every == 0:
                logger.info(f"Progress {self.source.source_key}: {summary.log_line()}")

        if item.kind == ItemKind.MALFORMED:
            summary.malformed += 1
            logger.warning(f"Skipping malformed input from {self.source.source_key}: {item.error}")
        elif item.kind == ItemKind.RECORD:
            await self._process_record(item)

        self._position = item.position

    async def _process_record(self, item: SourceItem) -> None:
        summary = self.summary

        if not self.normalizer.matches(item.raw):
            return
        summary.candidates += 1

        result = self.normalizer.normalize(item.raw, item.context)
        if not result.is_ok:
            summary.rejected += 1
            summary.skipped += 1
            if result.status == NormalizationStatus.FAILED:
                logger.warning(f"Normalization failed ({item.position.position}): {result.reason}")
            else:
                logger.debug(f"Record rejected ({item.position.position}): {result.reason}")
            return

        summary.normalized += 1
        product = result.product

        if self.enricher is not None:
            try:
                product = await self.enricher(product)
            except ImageResolutionError as e:
                logger.warning(f"Image step failed for {product.barcode}, keeping source URLs: {e.message}")

        self._buffer.append(product)

    async def _flush(self) -> None:
        """
        FLUSHING_BATCH: persist the buffer, then checkpoint.

        A failed batch is counted as skipped and blocks checkpoint saves until
        a later batch succeeds.
        """
        summary = self.summary
        batch, self._buffer = self._buffer, []

        if batch:
            previous_state = summary.state
            summary.state = RunState.FLUSHING_BATCH
            try:
                result = await self.loader.load(batch)
            except LoadError as e:
                summary.batches_failed += 1
                summary.skipped += len(batch)
                self._blocked = True
                logger.error(
                    f"Batch of {len(batch)} failed for {self.source.source_key}, "
                    f"checkpoint held at {self._committed.position if self._committed else 0}: {e.message}",
                    extra={"error_context": e.to_dict()}
                )
                return
            finally:
                summary.state = previous_state

            summary.batches_flushed += 1
            summary.inserted += result.inserted
            summary.updated += result.updated
            summary.skipped += result.skipped
            self._blocked = False

        if not self._blocked:
            await self._save_checkpoint(self._position)

    async def _save_checkpoint(self, checkpoint: Optional[Checkpoint]) -> None:
        """Save with one retry; the second failure propagates"""
        if checkpoint is None or checkpoint.same_position(self._committed):
            return

        for attempt in range(1, self.CHECKPOINT_SAVE_ATTEMPTS + 1):
            try:
                await self.checkpoints.save(checkpoint)
                break
            except CheckpointError as e:
                if attempt >= self.CHECKPOINT_SAVE_ATTEMPTS:
                    raise
                logger.warning(f"Checkpoint save failed, retrying: {e.message}")

        self._committed = checkpoint
        self.summary.checkpoint = checkpoint
        logger.debug(f"Checkpoint {checkpoint.source_key} -> {checkpoint.position}")

    def _stop_reason(self) -> Optional[StopReason]:
        summary = self.summary
        if self.stop_event.is_set():
            return StopReason.CANCELLED
        if self.max_scanned is not None and summary.records_scanned >= self.max_scanned:
            return StopReason.MAX_SCANNED
        if self.max_records is not None and summary.normalized >= self.max_records:
            return StopReason.MAX_RECORDS
        return None

    def _abort(self, error: SyncException) -> PipelineAbortedError:
        summary = self.summary
        summary.state = RunState.FAILED
        summary.stop_reason = StopReason.ABORTED
        summary.error = error.to_dict()
        summary.completed_at = datetime.utcnow()

        logger.error(
            f"Sync for {self.source.source_key} aborted: {error.message} | "
            f"partial summary: {summary.log_line()}",
            extra={"error_context": error.to_dict()}
        )
        return PipelineAbortedError(
            f"Sync aborted for {self.source.source_key}: {error.message}",
            summary=summary,
            context={"source_key": self.source.source_key},
            original_exception=error
        )
