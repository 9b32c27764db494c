"""
Forkable crawl tasks.

A task owns a frontier and a handler. Each round it reserves budget for a
chunk of its frontier, hands any surplus to a freshly forked WorkerTask,
parses the chunk and carries the discovered links into the next round.
Forks are enqueued on the scheduler's pool through ``submit``; a task never
runs its children itself.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Tuple

from .handler import CrawlerHandler, HandlerError
from .state import RunState
from ..utils.logger import get_crawler_logger


NO_FORK = 0


class CrawlTask(ABC):
    """Round loop shared by the root task and worker tasks."""

    is_root = False

    def __init__(self, handler: CrawlerHandler, state: RunState,
                 submit: Callable[['CrawlTask'], None], chunk_size: int = NO_FORK,
                 frontier: Optional[List[str]] = None):
        self.handler = handler
        self.state = state
        self.submit = submit
        self.chunk_size = chunk_size
        self.frontier: List[str] = list(frontier or [])
        self.discovered: List[str] = []

        self.task_id = state.next_task_id()
        self.rounds = 0
        self.logger = get_crawler_logger(__name__, task=self.task_id, root=self.is_root)

    @property
    @abstractmethod
    def root(self) -> 'RootTask':
        """The root task of the fork tree."""

    @property
    def forking_enabled(self) -> bool:
        return self.chunk_size > NO_FORK

    async def compute(self):
        """Run rounds until the frontier, the budget or the run is exhausted."""
        self.state.stats.tasks += 1
        try:
            await self._run_rounds()
        except Exception as e:
            self.state.stats.failed_tasks += 1
            self.logger.error(f"Task branch terminated: {e}", exc_info=True)
        finally:
            self.finish()

    async def _run_rounds(self):
        while True:
            if self.state.aborted or self.state.exhausted:
                break

            delegated = self._split_workload()
            batch = self.state.reserve(self.frontier)
            if batch is None:
                break
            self.frontier = batch

            if delegated and self.forking_enabled and not self.state.aborted:
                self._fork(delegated)

            self.rounds += 1
            self.state.stats.rounds += 1
            self.logger.debug(f"Round {self.rounds}: parsing {len(self.frontier)} URLs")

            result = await self.handler.parse(self.frontier, self.state)
            if result.aborted:
                self._abort()
                await self.merge()
                break
            self.discovered = result.links

            await self.merge()

            self.frontier = self.discovered
            self.discovered = []
            # An unbounded run only ever parses the submitted batch.
            if not self.frontier or not self.state.bounded:
                break

    def _split_workload(self) -> Optional[List[str]]:
        """Keep the first chunk_size URLs and return the rest, if any."""
        if self.forking_enabled and len(self.frontier) > self.chunk_size:
            self.frontier, delegated = split_at(self.frontier, self.chunk_size)
            return delegated
        return None

    def _fork(self, delegated: List[str]):
        child = WorkerTask(
            root=self.root,
            handler=self.handler.clone(),
            state=self.state,
            submit=self.submit,
            chunk_size=self.chunk_size,
            frontier=delegated
        )
        self.state.outstanding.add()
        self.state.stats.forks += 1
        self.logger.debug(f"Forked task {child.task_id} with {len(delegated)} URLs")
        self.submit(child)

    def _abort(self):
        self.state.abort()
        self.frontier = []
        self.discovered = []

    async def merge(self):
        """Publish this task's accumulated results to the root handler."""

    @abstractmethod
    def finish(self):
        """Signal that this task has run its last round."""


class RootTask(CrawlTask):
    """
    The task created by the scheduler. Its handler is the one the caller
    reads results from; it waits for the whole fork tree before the run ends.
    """

    is_root = True

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._finished = asyncio.Event()

    @property
    def root(self) -> 'RootTask':
        return self

    def finish(self):
        self._finished.set()

    async def join(self):
        """Wait for this task's rounds and then for every forked task."""
        await self._finished.wait()
        await self.state.outstanding.wait()


class WorkerTask(CrawlTask):
    """A forked task. It merges into the root handler after every round."""

    def __init__(self, root: RootTask, *args, **kwargs):
        self._root = root
        super().__init__(*args, **kwargs)

    @property
    def root(self) -> RootTask:
        return self._root

    async def merge(self):
        async with self.state.merge_lock:
            try:
                self.root.handler.merge(self.handler)
            except Exception as e:
                raise HandlerError(f"Could not merge task {self.task_id} into root: {e}") from e
            self.state.stats.merges += 1
        # Results now live in the root; start the next round empty.
        self.handler.reset()

    def finish(self):
        remaining = self.state.outstanding.done()
        if remaining == 0:
            self.logger.debug("Last outstanding task finished")


def split_at(urls: List[str], index: int) -> Tuple[List[str], List[str]]:
    """Split urls into the first index items and the rest."""
    return list(urls[:index]), list(urls[index:])
