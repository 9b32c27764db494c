"""
Handler contract used by crawl tasks to parse pages and accumulate results.
"""

import copy
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional
from urllib.parse import urlparse

from .fetcher import PageFetcher, FetchError, MalformedURLError
from .page import Page
from .state import RunState


class HandlerError(Exception):
    """Cloning or merging a handler failed."""
    pass


@dataclass
class ParseResult:
    """Outcome of parsing one batch: the next frontier, or a run-wide abort."""
    links: List[str] = field(default_factory=list)
    aborted: bool = False

    @classmethod
    def abort(cls) -> 'ParseResult':
        return cls(aborted=True)


class CrawlerHandler(ABC):
    """
    Base class for crawl handlers.

    A handler holds configuration (everything set in __init__, including the
    fetcher) and accumulators (everything installed by reset()). Forked
    tasks work on clones: configuration is shared by reference, accumulators
    are always fresh. The scheduler merges clones back into the root handler
    with merge(), in no particular order, so merge() must be commutative.
    """

    def __init__(self, fetcher: Optional[PageFetcher] = None):
        self.fetcher = fetcher if fetcher is not None else PageFetcher()
        self.logger = logging.getLogger(__name__)
        self.reset()

    @abstractmethod
    def reset(self):
        """Install fresh, empty accumulators."""

    @abstractmethod
    def merge(self, other: 'CrawlerHandler'):
        """Fold the accumulators of other into this handler."""

    @abstractmethod
    def parse_page(self, page: Page) -> bool:
        """
        Handle one fetched page.

        Returns:
            False to abort the whole run, True to continue
        """

    def clone(self) -> 'CrawlerHandler':
        """Copy the configuration and give the copy empty accumulators."""
        try:
            twin = copy.copy(self)
            twin.reset()
        except Exception as e:
            raise HandlerError(f"Could not clone {type(self).__name__}: {e}") from e
        return twin

    # Connection

    async def open(self):
        """Acquire shared resources before a run."""
        await self.fetcher.start()

    async def close(self):
        """Release shared resources after a run."""
        await self.fetcher.close()

    async def open_page(self, url: str) -> Page:
        """
        Retrieve url. Override when a target needs a more elaborate
        connection (credentials, custom headers, another transport).
        """
        return await self.fetcher.fetch(url)

    # Filters

    def filter_links(self, page: Page, links: List[str]) -> List[str]:
        """
        Choose which of the page's links become the next frontier.

        By default only strict descendants of the page are kept. Override to
        drop noise (stylesheets, scripts) or to inject links, e.g. for
        pagination.
        """
        return self.child_only(page.url, links)

    @staticmethod
    def child_only(page_url: str, links: List[str]) -> List[str]:
        """
        Keep links that are strict path descendants of page_url.

        For http://www.example.org/a/b/?q=1, http://www.example.org/a/b/c/d
        passes while http://www.example.org/a/b/ does not.
        """
        parsed = urlparse(page_url)
        parent = f"{parsed.scheme}://{parsed.netloc}{parsed.path}"
        return [link for link in links
                if link.startswith(parent) and len(link) > len(parent)]

    # Parsing

    async def parse(self, urls: List[str], state: RunState) -> ParseResult:
        """
        Fetch and handle a batch of URLs sequentially.

        A malformed URL is skipped. A fetch failure ends the batch early but
        keeps the links discovered so far. A False from parse_page, or the
        run's abort flag, yields an abort result.
        """
        discovered: List[str] = []
        for url in urls:
            if state.aborted:
                return ParseResult.abort()

            try:
                page = await self.open_page(url)
            except MalformedURLError as e:
                self.logger.warning(f"Skipping malformed URL: {e}")
                continue
            except FetchError as e:
                self.logger.warning(f"Stopping batch after fetch failure: {e}")
                break

            if not self.parse_page(page):
                self.logger.info(f"Handler requested abort at {url}")
                return ParseResult.abort()

            discovered.extend(self.filter_links(page, page.hyperlinks))

        return ParseResult(discovered)
