"""
Handler that collects every hyperlink seen during a crawl.
"""

from collections import Counter
from typing import Set

from ..crawler.handler import CrawlerHandler
from ..crawler.page import Page


class LinkCollector(CrawlerHandler):
    """
    Accumulates all hyperlinks of the visited pages and how many times each
    page was visited.
    """

    def reset(self):
        self.links: Set[str] = set()
        self.visits: Counter = Counter()

    def merge(self, other: 'LinkCollector'):
        self.links |= other.links
        self.visits.update(other.visits)

    def parse_page(self, page: Page) -> bool:
        self.visits[page.url] += 1
        self.links.update(page.hyperlinks)
        return True

