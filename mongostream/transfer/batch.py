"""
Batch Accumulation
"""
import logging
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

Batch = List[Dict[str, Any]]


class BatchAccumulator:
    """
    Collects documents into a buffer of ``capacity`` and hands it off when full

    Detaching swaps in a fresh list; the full list belongs to the caller from
    then on and is never touched here again. With ``flush_total`` set (continue
    mode) the buffer is also handed off as soon as it completes the expected
    total, so the last partial batch does not wait for end of stream.
    """

    def __init__(self, capacity: int, flush_total: Optional[int] = None):
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self.capacity = capacity
        self.flush_total = flush_total
        self.detached_count = 0
        self.batches_detached = 0
        self._buffer: Batch = []

    def __len__(self) -> int:
        return len(self._buffer)

    def push(self, document: Dict[str, Any]) -> Optional[Batch]:
        self._buffer.append(document)
        if len(self._buffer) >= self.capacity:
            return self._detach()
        # only at the crossing; docs past the total (source grew) batch normally
        if self.flush_total is not None and len(self._buffer) + self.detached_count == self.flush_total:
            logger.debug(f"Early flush of {len(self._buffer)} docs at expected total {self.flush_total}")
            return self._detach()
        return None

    def take_remainder(self) -> Optional[Batch]:
        """Partial buffer left at end of stream, if any"""
        if not self._buffer:
            return None
        return self._detach()

    def _detach(self) -> Batch:
        batch, self._buffer = self._buffer, []
        self.detached_count += len(batch)
        self.batches_detached += 1
        return batch
