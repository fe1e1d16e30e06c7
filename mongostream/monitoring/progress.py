"""
Progress Tracking
Per-collection counters with whole-percent progress lines and an optional tqdm bar
"""
import logging
import sys
import time
from typing import Callable, Optional

from tqdm import tqdm

logger = logging.getLogger(__name__)


class ProgressTracker:
    """
    Counts processed documents for one collection transfer

    A progress line is logged each time the percentage crosses a whole point,
    and a single completion line once the count reaches the total.
    """

    def __init__(self, namespace: str, show_bar: bool = False,
                 clock: Callable[[], float] = time.time):
        self.namespace = namespace
        self.count = 0
        self.total: Optional[int] = None
        self.marker = 0
        self.completed = False
        self.start_time: Optional[float] = None
        self._clock = clock
        self._show_bar = show_bar
        self._bar: Optional[tqdm] = None

    def set_total(self, total: int, start_time: Optional[float] = None):
        if self.total is not None:
            raise RuntimeError(f"{self.namespace}: total already set")
        self.total = int(total)
        self.start_time = self._clock() if start_time is None else start_time
        self._bar = tqdm(
            total=self.total,
            desc=self.namespace,
            unit="docs",
            unit_scale=True,
            dynamic_ncols=True,
            leave=True,
            file=sys.stdout,
            disable=not self._show_bar
        )

    @property
    def elapsed(self) -> float:
        if self.start_time is None:
            return 0.0
        return self._clock() - self.start_time

    @property
    def rate(self) -> float:
        elapsed = self.elapsed
        return self.count / elapsed if elapsed > 0 else 0.0

    @property
    def percent(self) -> Optional[float]:
        if not self.total:
            return None
        return self.count / self.total * 100.0

    def increment(self, n: int = 1) -> bool:
        """Add ``n`` processed documents; returns True when a line was logged"""
        if self.total is None:
            raise RuntimeError(f"{self.namespace}: set_total() must be called before increment()")

        self.count += n
        if self._bar is not None:
            self._bar.update(n)

        percent = self.percent
        if percent is None:
            # nothing expected, so there is no percentage to report
            logger.debug(f"{self.namespace}: {self.count} docs processed, 0 expected")
            return False

        # exact; float division can land just below a whole percent
        whole = self.count * 100 // self.total
        if whole <= self.marker:
            return False

        if self.count >= self.total and not self.completed:
            self.completed = True
            logger.info(f"{self.namespace}: 100% complete, {self.rate:.2f}/s, {self.count}/{self.total}")
        elif self.count > self.total:
            logger.info(f"{self.namespace}: (catching up) {percent:.2f}%, {self.rate:.2f}/s, {self.count}/{self.total}")
        else:
            logger.info(f"{self.namespace}: {percent:.2f}%, {self.rate:.2f}/s, {self.count}/{self.total}")
        self.marker = whole
        return True

    def close(self):
        if self._bar is not None:
            self._bar.close()
            self._bar = None
