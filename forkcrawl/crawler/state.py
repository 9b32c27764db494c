"""
Per-run shared state for the crawl tree: budget accounting, abort flag and
the outstanding-task join counter.

All mutating methods here are synchronous and never await, so on the event
loop each of them executes as one atomic step with respect to every other
crawl task.
"""

import asyncio
import itertools
import logging
from typing import List, Optional

from ..utils.monitoring import CrawlStats


class WaitGroup:
    """
    Counting join primitive.

    Parents call add() before a child becomes visible to the pool, children
    call done() exactly once when they finish. wait() returns once the count
    transitions back to zero.
    """

    def __init__(self):
        self._count = 0
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def count(self) -> int:
        return self._count

    def add(self, delta: int = 1):
        if delta < 1:
            raise ValueError("WaitGroup.add() expects a positive delta")
        self._count += delta
        self._idle.clear()

    def done(self) -> int:
        if self._count <= 0:
            raise RuntimeError("WaitGroup.done() called more times than add()")
        self._count -= 1
        if self._count == 0:
            self._idle.set()
        return self._count

    async def wait(self):
        await self._idle.wait()


class RunState:
    """
    State shared by every task of one run.

    Every mutation here is synchronous, so it cannot interleave with another
    task on the event loop. merge_lock marks the merge into the root handler
    as a critical section; it only starts excluding anything once a merge
    awaits.
    """

    def __init__(self, budget: Optional[int] = None):
        self.budget = budget
        self.visited_count = 0
        self.outstanding = WaitGroup()
        self.merge_lock = asyncio.Lock()
        self.stats = CrawlStats()
        self.logger = logging.getLogger(__name__)

        self._aborted = False
        self._task_ids = itertools.count()

    @property
    def bounded(self) -> bool:
        return self.budget is not None

    @property
    def aborted(self) -> bool:
        return self._aborted

    @property
    def exhausted(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def abort(self):
        """Raise the run-wide abort flag. There is no way to lower it."""
        if not self._aborted:
            self._aborted = True
            self.stats.aborted = True
            self.logger.info(f"Abort requested after {self.visited_count} visited URLs")

    def remaining(self) -> Optional[int]:
        """Budget left, or None for an unbounded run."""
        if self.budget is None:
            return None
        return self.budget - self.visited_count

    def reserve(self, urls: List[str]) -> Optional[List[str]]:
        """
        Reserve budget for a batch before it is parsed.

        The remaining-budget check, the clamp and the increment of
        visited_count happen together, so concurrent tasks can never
        over-reserve.

        Returns:
            The retained (possibly clamped) batch, or None if the budget is
            already spent.
        """
        remaining = self.remaining()
        if remaining is not None:
            if remaining <= 0:
                return None
            if len(urls) > remaining:
                urls = urls[:remaining]
        self.visited_count += len(urls)
        return urls

    def next_task_id(self) -> int:
        return next(self._task_ids)
