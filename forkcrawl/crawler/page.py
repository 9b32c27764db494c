"""
Page model handed to crawler handlers: raw body, content type and lazily
extracted, normalized outbound links.
"""

import logging
from pathlib import Path
from typing import List, Optional, Union
from urllib.parse import urljoin, urlparse, urldefrag

from bs4 import BeautifulSoup


CHARACTER_CONTENT_TYPES = (
    'application/xhtml+xml',
    'application/xml',
)


class Page:
    """
    A fetched page.

    Content is decoded on first access and hyperlinks are extracted on first
    access; both are cached afterwards.
    """

    def __init__(self, url: str, body: bytes = b'', content_type: str = 'text/html',
                 status: int = 200, encoding: Optional[str] = None):
        self.url = url
        self.body = body
        self.content_type = (content_type or '').lower()
        self.status = status
        self.encoding = encoding
        self.logger = logging.getLogger(__name__)

        self._content: Optional[str] = None
        self._soup: Optional[BeautifulSoup] = None
        self._links: Optional[List[str]] = None

    @classmethod
    def from_text(cls, url: str, text: str, content_type: str = 'text/html',
                  status: int = 200) -> 'Page':
        return cls(url, text.encode('utf-8'), content_type, status, 'utf-8')

    def __repr__(self) -> str:
        return f"Page({self.url!r}, status={self.status})"

    def __str__(self) -> str:
        return self.url

    @property
    def is_character_content(self) -> bool:
        """True when the body is text that can be decoded and searched."""
        return (self.content_type.startswith('text')
                or self.content_type.startswith(CHARACTER_CONTENT_TYPES))

    @property
    def content(self) -> str:
        if self._content is None:
            self._content = self._decode()
        return self._content

    @property
    def soup(self) -> BeautifulSoup:
        if self._soup is None:
            self._soup = BeautifulSoup(self.content, 'lxml')
        return self._soup

    @property
    def title(self) -> Optional[str]:
        if not self.is_character_content:
            return None
        title_tag = self.soup.find('title')
        return title_tag.get_text().strip() if title_tag else None

    @property
    def hyperlinks(self) -> List[str]:
        """
        All links of this page, normalized against the page URL.

        Absolute links pass through, root-relative links replace the path and
        path-relative links resolve against the page's directory. Fragments
        are dropped. Non-text pages have no links.
        """
        if self._links is None:
            self._links = self._extract_links() if self.is_character_content else []
        return self._links

    def save(self, filepath: Union[str, Path]):
        """Write the raw body to disk."""
        path = Path(filepath)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(self.body)

    def _decode(self) -> str:
        encoding = self.encoding or 'utf-8'
        try:
            return self.body.decode(encoding)
        except (UnicodeDecodeError, LookupError):
            for fallback_encoding in ['utf-8', 'latin-1', 'cp1252']:
                try:
                    return self.body.decode(fallback_encoding)
                except UnicodeDecodeError:
                    continue
            return self.body.decode('utf-8', errors='ignore')

    def _extract_links(self) -> List[str]:
        links = []
        for anchor in self.soup.find_all('a', href=True):
            href = anchor['href'].strip()
            if not href or href.startswith('#'):
                continue

            try:
                absolute_url, _ = urldefrag(urljoin(self.url, href))
                if urlparse(absolute_url).scheme not in ('http', 'https'):
                    continue
            except ValueError as e:
                self.logger.debug(f"Skipping malformed link {href!r} on {self.url}: {e}")
                continue
            links.append(absolute_url)

        self.logger.debug(f"Extracted {len(links)} links from {self.url}")
        return links
