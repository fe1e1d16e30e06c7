"""
Fleet Orchestration
Runs one transfer per collection under a fleet-wide concurrency limit
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from pymongo.errors import PyMongoError

from ..config.manager import TransferOptions
from ..core.database import StoreConnection
from ..errors import ConfigError, StreamError
from .engine import CollectionTransfer, TransferResult
from .indexes import IndexCopier
from .validation import ValidationPass, ValidationReport

logger = logging.getLogger(__name__)


@dataclass
class FleetReport:
    """Per-collection outcomes of one run"""
    collections: List[str] = field(default_factory=list)
    transfers: Dict[str, TransferResult] = field(default_factory=dict)
    validations: Dict[str, ValidationReport] = field(default_factory=dict)
    failures: Dict[str, str] = field(default_factory=dict)
    duration: float = 0.0

    @property
    def documents_submitted(self) -> int:
        return sum(result.submitted for result in self.transfers.values())


class FleetOrchestrator:
    """
    Transfers every target collection, ``collection_concurrency`` at a time

    A failing collection is logged and recorded; its siblings keep running.
    """

    def __init__(self, source: StoreConnection, destination: StoreConnection, options: TransferOptions):
        self.source = source
        self.destination = destination
        self.options = options

    async def resolve_collections(self) -> List[str]:
        if self.options.collection:
            collections = [self.options.collection]
        else:
            collections = await self.source.list_collections()
            logger.info(f"{self.options.database}: Found {len(collections)} collections to transfer")

        if self.options.rename_collection and len(collections) > 1:
            raise ConfigError(
                f"Cannot rename {len(collections)} collections onto "
                f"{self.options.rename_collection}; choose a single --collection"
            )
        return collections

    def _concurrency(self) -> int:
        if self.options.rename_collection:
            return 1
        return self.options.collection_concurrency

    async def run(self, collections: Optional[List[str]] = None) -> FleetReport:
        start = time.time()
        if collections is None:
            collections = await self.resolve_collections()

        report = FleetReport(collections=list(collections))
        semaphore = asyncio.Semaphore(self._concurrency())

        tasks = [
            asyncio.create_task(self._run_collection(collection, semaphore, report))
            for collection in collections
        ]
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for collection, result in zip(collections, results):
            if isinstance(result, Exception):
                report.failures[collection] = repr(result)
                logger.error(f"{self.options.database}.{collection}: Transfer crashed: {result!r}")

        report.duration = time.time() - start
        self._log_summary(report)
        return report

    async def _run_collection(self, collection: str, semaphore: asyncio.Semaphore, report: FleetReport):
        namespace = f"{self.options.database}.{collection}"
        async with semaphore:
            if self.options.copy_indexes:
                await self._copy_indexes(collection)

            try:
                result = await CollectionTransfer(self.source, self.destination, self.options, collection).run()
            except (StreamError, PyMongoError) as e:
                report.failures[collection] = str(e)
                logger.error(f"{namespace}: Transfer failed: {e}")
                return
            report.transfers[collection] = result

            if self.options.validate:
                try:
                    validation = await ValidationPass(
                        self.source,
                        self.destination,
                        collection,
                        batch_size=self.options.cursor_batch_size,
                        show_progress_bar=self.options.show_progress_bar
                    ).run()
                except (StreamError, PyMongoError) as e:
                    report.failures[collection] = f"validation: {e}"
                    logger.error(f"{namespace}: Validation failed: {e}")
                    return
                report.validations[collection] = validation

    async def _copy_indexes(self, collection: str):
        try:
            await IndexCopier(self.source, self.destination, collection).copy()
        except PyMongoError as e:
            logger.warning(f"{self.options.database}.{collection}: Could not copy indexes: {e}")

    def _log_summary(self, report: FleetReport):
        logger.info(f"Transferred {len(report.transfers)}/{len(report.collections)} collections, "
                    f"{report.documents_submitted} docs in {report.duration:.1f}s")
        for collection, result in sorted(report.transfers.items()):
            logger.info(f"   • {collection}: {result.submitted}/{result.total} docs, {result.metrics}")
        for collection, validation in sorted(report.validations.items()):
            if not validation.ok:
                logger.warning(f"   • {collection}: {len(validation.missing)} docs missing from source")
        for collection, reason in sorted(report.failures.items()):
            logger.error(f"   • {collection}: failed ({reason})")
