"""
forkcrawl

An embeddable fork/join engine for crawling a frontier of URLs in parallel.
"""

__version__ = "1.0.0"
__description__ = "Fork/join web crawling engine with budgeted, mergeable results"

from .crawler import CrawlerScheduler, CrawlerHandler, ParseResult, Page
from .utils.config import ConfigurationError

__all__ = ['CrawlerScheduler', 'CrawlerHandler', 'ParseResult', 'Page', 'ConfigurationError']
