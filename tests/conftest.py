import asyncio
from typing import Dict, List

import pytest

from forkcrawl.crawler import CrawlerScheduler, FetchError, Page, PageFetcher
from forkcrawl.handlers import LinkCollector


ROOT = "http://x.com/"


def page_html(links: List[str]) -> str:
    anchors = "".join(f'<li><a href="{link}">{link}</a></li>' for link in links)
    return f"<html><head><title>t</title></head><body><ul>{anchors}</ul></body></html>"


def tree_site(breadth: int, depth: int, root: str = ROOT) -> Dict[str, str]:
    """A site where every page links to `breadth` children, `depth` levels deep."""
    site = {}

    def build(url: str, level: int):
        children = [f"p{i}/" for i in range(breadth)] if level < depth else []
        site[url] = page_html(children)
        for child in children:
            build(url + child, level + 1)

    build(root, 0)
    return site


def flat_site(count: int, root: str = ROOT) -> Dict[str, str]:
    """A root page linking to `count` leaf pages."""
    leaves = [f"{root}leaf{i}" for i in range(count)]
    site = {root: page_html([f"leaf{i}" for i in range(count)])}
    for leaf in leaves:
        site[leaf] = page_html([])
    return site


class SiteCollector(LinkCollector):
    """LinkCollector that reads pages from an in-memory site."""

    def __init__(self, site: Dict[str, str]):
        self.site = site
        super().__init__()

    async def open(self):
        pass

    async def close(self):
        pass

    async def open_page(self, url: str) -> Page:
        PageFetcher.check_url(url)
        # Yield so that tasks interleave as they would around real I/O.
        await asyncio.sleep(0)
        if url not in self.site:
            raise FetchError(f"HTTP 404 fetching {url}")
        return Page.from_text(url, self.site[url])


@pytest.fixture
def site():
    return tree_site(breadth=3, depth=3)


@pytest.fixture
def collector(site):
    return SiteCollector(site)


@pytest.fixture
def scheduler(collector):
    return CrawlerScheduler(handler=collector)
