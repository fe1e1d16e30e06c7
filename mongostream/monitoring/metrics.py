"""
Insert Metrics
Per-operation accounting for destination writes
"""
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class OperationType(Enum):
    """Kinds of destination writes"""
    INSERT_ONE = "insert_one"
    INSERT_MANY = "insert_many"


@dataclass
class OperationRecord:
    """Metrics for a single insert call"""
    operation_type: OperationType
    start_time: float
    documents_attempted: int
    end_time: Optional[float] = None
    documents_inserted: int = 0
    duplicates: int = 0
    success: bool = False
    error_message: Optional[str] = None

    @property
    def duration(self) -> float:
        if self.end_time is None:
            return time.time() - self.start_time
        return self.end_time - self.start_time

    @property
    def rate(self) -> float:
        return self.documents_inserted / self.duration if self.duration > 0 else 0


@dataclass
class InsertMetrics:
    """
    Write metrics for one collection transfer

    Only totals and the last few failures are kept; individual successful
    operations are folded into the counters as they finish.
    """
    namespace: str
    max_failures_kept: int = 20
    operations: int = 0
    failed_operations: int = 0
    documents_attempted: int = 0
    documents_inserted: int = 0
    duplicates: int = 0
    busy_time: float = 0.0
    recent_failures: List[OperationRecord] = field(default_factory=list)

    def start_operation(self, operation_type: OperationType, documents: int) -> OperationRecord:
        return OperationRecord(
            operation_type=operation_type,
            start_time=time.time(),
            documents_attempted=documents
        )

    def end_operation(self, record: OperationRecord, inserted: int, success: bool,
                      duplicates: int = 0, error_message: Optional[str] = None):
        record.end_time = time.time()
        record.documents_inserted = inserted
        record.duplicates = duplicates
        record.success = success
        record.error_message = error_message

        self.operations += 1
        self.documents_attempted += record.documents_attempted
        self.documents_inserted += inserted
        self.duplicates += duplicates
        self.busy_time += record.duration

        if not success:
            self.failed_operations += 1
            self.recent_failures.append(record)
            if len(self.recent_failures) > self.max_failures_kept:
                self.recent_failures.pop(0)

        logger.debug(f"{self.namespace}: {record.operation_type.value} {inserted}/{record.documents_attempted} docs "
                     f"in {record.duration:.3f}s ({record.rate:.0f} docs/s)")

    @property
    def documents_failed(self) -> int:
        return self.documents_attempted - self.documents_inserted - self.duplicates

    def summary(self) -> Dict[str, Any]:
        return {
            "operations": self.operations,
            "failed_operations": self.failed_operations,
            "documents_attempted": self.documents_attempted,
            "documents_inserted": self.documents_inserted,
            "duplicates": self.duplicates,
            "documents_failed": self.documents_failed,
            "average_rate": self.documents_inserted / self.busy_time if self.busy_time > 0 else 0
        }
