"""
Page fetcher built on aiohttp. Resolves a URL to a Page.
"""

import asyncio
import aiohttp
import logging
from typing import Optional, Dict
from urllib.parse import urlparse
from aiohttp import ClientSession, ClientTimeout, ClientError

from .page import Page


DEFAULT_USER_AGENT = "forkcrawl/1.0 (+https://pypi.org/project/forkcrawl/)"


class FetchError(Exception):
    """The page could not be retrieved; the current round stops."""
    pass


class MalformedURLError(FetchError):
    """The URL cannot be fetched at all; the item is skipped."""
    pass


class PageFetcher:
    """
    Fetches pages over a shared aiohttp session.

    One fetcher is shared by a handler and all of its clones, so the
    connection pool and the request semaphore are per run, not per task.
    """

    def __init__(self, user_agent: str = DEFAULT_USER_AGENT, request_timeout: int = 30,
                 max_concurrent_requests: int = 10, max_content_size: int = 10 * 1024 * 1024):
        self.user_agent = user_agent
        self.request_timeout = request_timeout
        self.max_concurrent_requests = max_concurrent_requests
        self.max_content_size = max_content_size

        self.logger = logging.getLogger(__name__)

        self.session: Optional[ClientSession] = None
        self.semaphore: Optional[asyncio.Semaphore] = None

        self.stats = {
            'total_requests': 0,
            'successful_requests': 0,
            'failed_requests': 0,
            'malformed_urls': 0,
            'total_bytes_downloaded': 0
        }

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def start(self):
        """Open the HTTP session."""
        if self.session is None:
            timeout = ClientTimeout(total=self.request_timeout)
            headers = {'User-Agent': self.user_agent}

            self.semaphore = asyncio.Semaphore(self.max_concurrent_requests)
            self.session = aiohttp.ClientSession(
                timeout=timeout,
                headers=headers,
                connector=aiohttp.TCPConnector(
                    limit=self.max_concurrent_requests * 2,
                    limit_per_host=10,
                    ttl_dns_cache=300,
                    use_dns_cache=True
                )
            )
            self.logger.info("PageFetcher session started")

    async def close(self):
        """Close the HTTP session."""
        if self.session:
            await self.session.close()
            self.session = None
            self.semaphore = None
            self.logger.info("PageFetcher session closed")

    @staticmethod
    def check_url(url: str):
        """Raise MalformedURLError unless url is an absolute http(s) URL."""
        try:
            parsed = urlparse(url)
            parsed.port  # ValueError for a non-numeric or out-of-range port
        except ValueError as e:
            raise MalformedURLError(f"Malformed URL {url!r}: {e}") from e
        if parsed.scheme not in ('http', 'https') or not parsed.netloc:
            raise MalformedURLError(f"Malformed URL {url!r}")

    async def fetch(self, url: str) -> Page:
        """
        Fetch a single URL.

        Raises:
            MalformedURLError: the URL is not an absolute http(s) URL
            FetchError: timeout, transport error, HTTP error status or an
                oversized body
        """
        try:
            self.check_url(url)
        except MalformedURLError:
            self.stats['malformed_urls'] += 1
            raise

        if self.session is None:
            await self.start()

        async with self.semaphore:
            self.stats['total_requests'] += 1
            try:
                async with self.session.get(url) as response:
                    if response.status >= 400:
                        raise FetchError(f"HTTP {response.status} fetching {url}")

                    body = await self._read_body(response)
                    page = Page(
                        url=str(response.url),
                        body=body,
                        content_type=response.headers.get('content-type', ''),
                        status=response.status,
                        encoding=response.charset
                    )

            except asyncio.TimeoutError as e:
                self.stats['failed_requests'] += 1
                self.logger.warning(f"Timeout fetching {url}")
                raise FetchError(f"Request timeout fetching {url}") from e

            except aiohttp.InvalidURL as e:
                self.stats['malformed_urls'] += 1
                raise MalformedURLError(f"Malformed URL {url!r}: {e}") from e

            except ClientError as e:
                self.stats['failed_requests'] += 1
                self.logger.warning(f"Client error fetching {url}: {e}")
                raise FetchError(f"Client error fetching {url}: {e}") from e

            except FetchError:
                self.stats['failed_requests'] += 1
                raise

        self.stats['successful_requests'] += 1
        self.stats['total_bytes_downloaded'] += len(page.body)
        self.logger.debug(f"Fetched {url}: {page.status} ({len(page.body)} bytes)")
        return page

    async def _read_body(self, response) -> bytes:
        content_length = response.headers.get('content-length')
        if content_length and content_length.isdigit() and int(content_length) > self.max_content_size:
            raise FetchError(f"Content too large ({content_length} bytes): {response.url}")

        body = b''
        async for chunk in response.content.iter_chunked(8192):
            body += chunk
            if len(body) > self.max_content_size:
                raise FetchError(f"Content exceeded size limit during reading: {response.url}")
        return body

    def get_stats(self) -> Dict[str, int]:
        """Get fetcher statistics."""
        return self.stats.copy()
