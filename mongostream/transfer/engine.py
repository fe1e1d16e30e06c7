"""
Collection Transfer Engine
Streams one collection from source to destination with bounded parallel batch inserts
"""
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from ..config.manager import MAX_CURSOR_BATCH_SIZE, TransferOptions
from ..core.database import DocumentSource, StoreConnection
from ..monitoring.progress import ProgressTracker
from .batch import BatchAccumulator
from .inserter import BoundedInserter

logger = logging.getLogger(__name__)


class TransferState(Enum):
    """Lifecycle of a collection transfer"""
    IDLE = "idle"
    SIZING = "sizing"
    STREAMING = "streaming"
    DRAINING = "draining"
    DONE = "done"


@dataclass
class TransferResult:
    """Outcome of one collection transfer"""
    collection: str
    total: int
    submitted: int
    batches: int
    resumed_after: Optional[Any] = None
    duration: float = 0.0
    insert_errors: int = 0
    metrics: Dict[str, Any] = field(default_factory=dict)

    @property
    def rate(self) -> float:
        return self.submitted / self.duration if self.duration > 0 else 0


class CollectionTransfer:
    """
    Source cursor -> batch accumulator -> bounded inserter -> progress tracker

    Sizing and cursor-open failures raise SizingError to the caller; read and
    insert failures are logged where they happen and the transfer carries on.
    """

    def __init__(self, source: StoreConnection, destination: StoreConnection,
                 options: TransferOptions, collection: str):
        self.options = options
        self.collection = collection
        self.source = DocumentSource(source, collection)
        self.destination = DocumentSource(destination, collection)
        self.namespace = f"{source.database_name}.{collection}"
        self.state = TransferState.IDLE
        self.resume_after: Optional[Any] = None
        self.progress = ProgressTracker(self.namespace, show_bar=options.show_progress_bar)
        self.inserter = BoundedInserter(
            destination.collection(collection),
            self.namespace,
            concurrency=options.effective_insert_concurrency,
            ordered=options.ordered_inserts,
            verbose=options.verbose
        )

    def _set_state(self, state: TransferState):
        logger.debug(f"{self.namespace}: {self.state.value} -> {state.value}")
        self.state = state

    async def run(self) -> TransferResult:
        start = time.time()
        try:
            total = await self._size()
            self.progress.set_total(total)
            self._set_state(TransferState.STREAMING)

            if self.options.single_item_mode:
                logger.info(f"{self.namespace}: Inserting {total} docs one at a time")
                await self._stream_single()
            else:
                if total:
                    logger.info(f"{self.namespace}: Bulk inserting {total} docs in batches of {self.options.bulk_size}")
                else:
                    logger.info(f"{self.namespace}: There are {total} docs to upload")
                await self._stream_batches(total)

            await self.inserter.join()
        except BaseException:
            cancelled = self.inserter.cancel()
            if cancelled:
                logger.warning(f"{self.namespace}: Cancelled {cancelled} pending insert tasks")
            await self.inserter.join()
            raise
        finally:
            self.progress.close()

        self._set_state(TransferState.DONE)
        result = TransferResult(
            collection=self.collection,
            total=total,
            submitted=self.progress.count,
            batches=self.inserter.batches_submitted,
            resumed_after=self.resume_after,
            duration=time.time() - start,
            insert_errors=self.inserter.errors,
            metrics=self.inserter.metrics.summary()
        )
        logger.info(f"{self.namespace}: Injected {result.submitted} docs in {result.batches} batches "
                    f"({result.rate:.0f} docs/s, {result.insert_errors} insert errors)")
        return result

    async def _size(self) -> int:
        self._set_state(TransferState.SIZING)
        if self.options.continue_from_marker:
            self.resume_after = await self.destination.max_identity()
        return await self.source.count(after=self.resume_after)

    def _documents(self):
        if not self.options.single_item_mode and self.options.bulk_size > MAX_CURSOR_BATCH_SIZE:
            logger.info(f"{self.namespace}: Setting mongo cursor batch_size to {MAX_CURSOR_BATCH_SIZE}")
        return self.source.documents(after=self.resume_after, batch_size=self.options.cursor_batch_size)

    async def _stream_single(self):
        async for doc in self._documents():
            await self.inserter.insert_one(doc)
            self.progress.increment(1)
        self._set_state(TransferState.DRAINING)

    async def _stream_batches(self, total: int):
        flush_total = total if self.options.continue_from_marker else None
        accumulator = BatchAccumulator(self.options.bulk_size, flush_total=flush_total)

        async for doc in self._documents():
            batch = accumulator.push(doc)
            if batch is not None:
                await self.inserter.submit(batch)
                # counted on submission; failures are logged, not subtracted
                self.progress.increment(len(batch))

        self._set_state(TransferState.DRAINING)
        remainder = accumulator.take_remainder()
        if remainder is not None:
            await self.inserter.submit(remainder)
            self.progress.increment(len(remainder))
