"""
Validation Pass
Confirms every destination document also exists in the source
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Any, List

from pymongo.errors import PyMongoError

from ..core.database import DocumentSource, StoreConnection
from ..monitoring.progress import ProgressTracker

logger = logging.getLogger(__name__)


@dataclass
class ValidationReport:
    """Discrepancies found for one collection"""
    collection: str
    checked: int = 0
    found: int = 0
    missing: List[Any] = field(default_factory=list)
    lookup_errors: int = 0
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return not self.missing and not self.lookup_errors


class ValidationPass:
    """Read-only check; one miss never stops the pass"""

    def __init__(self, source: StoreConnection, destination: StoreConnection,
                 collection: str, batch_size: int = None, show_progress_bar: bool = False):
        self.collection = collection
        self.source = DocumentSource(source, collection)
        self.destination = DocumentSource(destination, collection)
        self.batch_size = batch_size
        self.namespace = f"{source.database_name}.{collection}"
        self.progress = ProgressTracker(f"{self.namespace} (validate)", show_bar=show_progress_bar)

    async def run(self) -> ValidationReport:
        start = time.time()
        report = ValidationReport(collection=self.collection)

        total = await self.destination.count()
        self.progress.set_total(total)
        logger.info(f"{self.namespace}: Validating that {total} docs in destination exist in source")

        try:
            async for doc in self.destination.documents(batch_size=self.batch_size):
                identity = doc["_id"]
                report.checked += 1
                try:
                    present = await self.source.contains(identity)
                except PyMongoError as e:
                    report.lookup_errors += 1
                    logger.error(f"{self.namespace}: Got error finding {identity}: {e}")
                else:
                    if present:
                        report.found += 1
                        logger.debug(f"{self.namespace}: Found {identity} in source collection")
                    else:
                        report.missing.append(identity)
                        logger.error(f"{self.namespace}: {identity} is missing from source collection")
                self.progress.increment(1)
        finally:
            self.progress.close()

        report.duration = time.time() - start
        if report.ok:
            logger.info(f"{self.namespace}: Completed validation, {report.checked} docs checked, no discrepancies")
        else:
            logger.error(f"{self.namespace}: Completed validation, {report.checked} docs checked, "
                         f"{len(report.missing)} missing from source, {report.lookup_errors} lookup errors")
        return report
