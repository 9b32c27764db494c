"""
Fork/join crawler core components.
"""

from .state import RunState, WaitGroup
from .page import Page
from .fetcher import PageFetcher, FetchError, MalformedURLError
from .handler import CrawlerHandler, HandlerError, ParseResult
from .task import CrawlTask, RootTask, WorkerTask
from .scheduler import CrawlerScheduler

__all__ = [
    'RunState', 'WaitGroup',
    'Page', 'PageFetcher', 'FetchError', 'MalformedURLError',
    'CrawlerHandler', 'HandlerError', 'ParseResult',
    'CrawlTask', 'RootTask', 'WorkerTask',
    'CrawlerScheduler'
]
