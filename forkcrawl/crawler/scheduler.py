"""
Crawler scheduler that drives a fork/join crawl on a pool of worker coroutines.
"""

import asyncio
import logging
import os
from typing import Dict, Iterable, List, Optional

from .handler import CrawlerHandler
from .state import RunState
from .task import CrawlTask, RootTask, NO_FORK
from ..utils.config import (
    Config, ConfigurationError, validate_budget, validate_chunk_size, validate_concurrency
)
from ..utils.monitoring import CrawlStats, MetricsCollector


class CrawlerScheduler:
    """
    Entry point of the engine.

    run() seeds a root task with the targets and executes it, and every task
    it forks, on a pool of ``concurrency`` workers. It returns once the whole
    fork tree has finished; results are read from the handler.

    Forking is disabled until chunk_size is set to a positive value. Without
    a budget only the submitted targets are visited.
    """

    def __init__(self, handler: Optional[CrawlerHandler] = None, chunk_size: int = NO_FORK,
                 budget: Optional[int] = None, metrics: Optional[MetricsCollector] = None):
        self.logger = logging.getLogger(__name__)
        self.handler = handler
        self.chunk_size = chunk_size
        self.budget = budget
        self.metrics = metrics

        self.state: Optional[RunState] = None
        self.workers: List[asyncio.Task] = []
        self.is_running = False

    @classmethod
    def from_config(cls, config: Config, handler: CrawlerHandler,
                    metrics: Optional[MetricsCollector] = None) -> 'CrawlerScheduler':
        return cls(
            handler=handler,
            chunk_size=config.crawler.chunk_size,
            budget=config.crawler.budget,
            metrics=metrics
        )

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    @chunk_size.setter
    def chunk_size(self, chunk_size: int):
        self._chunk_size = validate_chunk_size(chunk_size)

    @property
    def budget(self) -> Optional[int]:
        return self._budget

    @budget.setter
    def budget(self, budget: Optional[int]):
        self._budget = validate_budget(budget)

    @property
    def visited_count(self) -> int:
        """URLs visited by the last run. Reset at each run."""
        return self.state.visited_count if self.state else 0

    @property
    def stats(self) -> Optional[CrawlStats]:
        return self.state.stats if self.state else None

    def run(self, targets: Iterable[str], concurrency: int = 0) -> CrawlerHandler:
        """Blocking variant of crawl()."""
        return asyncio.run(self.crawl(targets, concurrency))

    async def crawl(self, targets: Iterable[str], concurrency: int = 0) -> CrawlerHandler:
        """
        Crawl targets.

        Args:
            targets: URLs to start from
            concurrency: number of worker coroutines, 0 for the CPU count

        Returns:
            The handler holding the merged results of every task
        """
        if self.handler is None:
            raise ConfigurationError("CrawlerHandler undefined")
        if self.is_running:
            raise ConfigurationError("Crawler is already running")
        concurrency = validate_concurrency(concurrency) or os.cpu_count() or 1
        targets = [str(target) for target in targets]

        self.state = RunState(self.budget)
        queue: asyncio.Queue = asyncio.Queue()
        root = RootTask(
            handler=self.handler,
            state=self.state,
            submit=queue.put_nowait,
            chunk_size=self.chunk_size,
            frontier=targets
        )

        self.is_running = True
        self.logger.info(
            f"Starting crawl of {len(targets)} targets with {concurrency} workers "
            f"(chunk_size={self.chunk_size or 'disabled'}, budget={self.budget or 'unbounded'})"
        )

        try:
            await self.handler.open()
            self.workers = [
                asyncio.create_task(self._worker(f"worker-{i}", queue))
                for i in range(concurrency)
            ]
            queue.put_nowait(root)
            await root.join()
        finally:
            self.is_running = False
            await self._cleanup_workers()
            await self.handler.close()

        self.state.stats.finish(self.state.visited_count)
        self._log_final_stats()
        if self.metrics:
            self.metrics.record_run(self.state.stats)
        return self.handler

    async def _worker(self, worker_id: str, queue: asyncio.Queue):
        """Worker coroutine that executes crawl tasks from the pool queue."""
        self.logger.debug(f"Worker {worker_id} started")

        while True:
            task: CrawlTask = await queue.get()
            try:
                await task.compute()
            except asyncio.CancelledError:
                self.logger.debug(f"Worker {worker_id} cancelled")
                raise
            except Exception as e:
                self.logger.error(f"Worker {worker_id} error: {e}")
            finally:
                queue.task_done()

    async def _cleanup_workers(self):
        """Cancel and cleanup worker coroutines."""
        if self.workers:
            for worker in self.workers:
                if not worker.done():
                    worker.cancel()

            await asyncio.gather(*self.workers, return_exceptions=True)
            self.workers.clear()

    def _log_final_stats(self):
        stats = self.state.stats
        self.logger.info("=== CRAWL COMPLETED ===")
        self.logger.info(f"Total URLs visited: {self.state.visited_count}")
        self.logger.info(f"Tasks: {stats.tasks} (forks={stats.forks}, failed={stats.failed_tasks})")
        self.logger.info(f"Rounds: {stats.rounds}, merges: {stats.merges}")
        self.logger.info(f"Aborted: {stats.aborted}")
        self.logger.info(f"Total time: {stats.elapsed_time:.2f} seconds")

    def get_stats(self) -> Dict:
        """Get statistics of the last run."""
        if not self.state:
            return {'is_running': self.is_running}
        stats = self.state.stats.to_dict()
        stats['visited_count'] = self.state.visited_count
        stats['outstanding_tasks'] = self.state.outstanding.count
        stats['is_running'] = self.is_running
        return stats
