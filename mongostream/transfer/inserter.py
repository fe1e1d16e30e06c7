"""
Bounded Insertion
Destination writes with a per-collection limit on in-flight insert_many calls
"""
import asyncio
import logging
from typing import Any, Dict, Optional, Set

from pymongo.errors import BulkWriteError, DuplicateKeyError, PyMongoError

from ..errors import InsertError
from ..monitoring.metrics import InsertMetrics, OperationType
from .batch import Batch

logger = logging.getLogger(__name__)

DUPLICATE_KEY_CODES = (11000, 11001)


class BoundedInserter:
    """
    Inserts into one destination collection

    ``submit`` waits for a permit before spawning each batch insert, which is
    what slows extraction down when the destination falls behind. Failed
    inserts are logged and counted, never retried and never raised.
    """

    def __init__(self, collection, namespace: str, concurrency: int,
                 ordered: bool = False, verbose: bool = False,
                 metrics: Optional[InsertMetrics] = None):
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {concurrency}")
        self.collection = collection
        self.namespace = namespace
        self.concurrency = concurrency
        self.ordered = ordered
        self.verbose = verbose
        self.metrics = metrics or InsertMetrics(namespace)
        self.batches_submitted = 0
        self.documents_submitted = 0
        self.errors = 0
        self._semaphore = asyncio.Semaphore(concurrency)
        self._tasks: Set[asyncio.Task] = set()

    @property
    def in_flight(self) -> int:
        return sum(1 for task in self._tasks if not task.done())

    async def insert_one(self, document: Dict[str, Any]) -> Optional[Any]:
        """Insert a single document; returns its _id, or None on failure"""
        record = self.metrics.start_operation(OperationType.INSERT_ONE, 1)
        try:
            result = await self.collection.insert_one(document)
        except DuplicateKeyError as e:
            self.metrics.end_operation(record, 0, False, duplicates=1, error_message=str(e))
            self._report(InsertError(f"insert_one duplicate _id {document.get('_id')}: {e}",
                                     attempted=1, duplicates=1))
            return None
        except PyMongoError as e:
            self.metrics.end_operation(record, 0, False, error_message=str(e))
            self._report(InsertError(f"insert_one failed for _id {document.get('_id')}: {e}", attempted=1))
            return None

        self.metrics.end_operation(record, 1, True)
        logger.debug(f"{self.namespace}: Inserted id: {result.inserted_id}")
        return result.inserted_id

    async def insert_many(self, batch: Batch):
        """Insert a whole batch with the configured ordering"""
        record = self.metrics.start_operation(OperationType.INSERT_MANY, len(batch))
        try:
            await self.collection.insert_many(batch, ordered=self.ordered)
        except BulkWriteError as e:
            inserted, duplicates = _bulk_error_counts(e.details)
            self.metrics.end_operation(record, inserted, False, duplicates=duplicates, error_message=str(e))
            self._report(InsertError(
                f"insert_many partially failed: {inserted} inserted, {duplicates} duplicates "
                f"of {len(batch)} docs: {_first_error_message(e.details)}",
                attempted=len(batch), inserted=inserted, duplicates=duplicates
            ))
            return
        except PyMongoError as e:
            self.metrics.end_operation(record, 0, False, error_message=str(e))
            self._report(InsertError(f"insert_many of {len(batch)} docs failed: {e}", attempted=len(batch)))
            return

        self.metrics.end_operation(record, len(batch), True)
        logger.debug(f"{self.namespace}: Bulk inserted {len(batch)} docs")

    async def submit(self, batch: Batch):
        """Wait for a permit, then insert ``batch`` in the background"""
        await self._semaphore.acquire()
        self.batches_submitted += 1
        self.documents_submitted += len(batch)
        task = asyncio.create_task(self._insert_with_permit(batch))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _insert_with_permit(self, batch: Batch):
        try:
            await self.insert_many(batch)
        finally:
            self._semaphore.release()

    async def join(self):
        """Wait for every submitted batch, successful or not"""
        if self._tasks:
            logger.info(f"{self.namespace}: Waiting for {len(self._tasks)} insert tasks to finish")
        while self._tasks:
            results = await asyncio.gather(*list(self._tasks), return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    self.errors += 1
                    logger.error(f"{self.namespace}: Insert task failed unexpectedly: {result!r}")

    def cancel(self) -> int:
        """Cancel inserts still running; returns how many were cancelled"""
        pending = [task for task in self._tasks if not task.done()]
        for task in pending:
            task.cancel()
        return len(pending)

    def _report(self, error: InsertError):
        self.errors += 1
        if self.verbose:
            logger.error(f"{self.namespace}: Got error with insert: {error}")
        else:
            logger.debug(f"{self.namespace}: Got error with insert: {error}")


def _bulk_error_counts(details: Dict[str, Any]):
    write_errors = details.get("writeErrors", [])
    duplicates = sum(1 for err in write_errors if err.get("code") in DUPLICATE_KEY_CODES)
    return details.get("nInserted", 0), duplicates


def _first_error_message(details: Dict[str, Any]) -> str:
    write_errors = details.get("writeErrors", [])
    if not write_errors:
        return "no write errors reported"
    return write_errors[0].get("errmsg", "unknown error")
