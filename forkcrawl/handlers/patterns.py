"""
Handler based on regular expressions. Every match of every registered
pattern in a page's content is collected.
"""

import re
from collections import Counter
from typing import Dict, List, Optional, Union

from ..crawler.fetcher import PageFetcher
from ..crawler.handler import CrawlerHandler
from ..crawler.page import Page


class PatternHandler(CrawlerHandler):
    """
    Collects regular-expression matches.

    Patterns and their capture groups are configuration and are shared with
    clones; the per-pattern match counters are accumulators.
    """

    def __init__(self, fetcher: Optional[PageFetcher] = None):
        self.filters: Dict[re.Pattern, int] = {}
        super().__init__(fetcher)

    def reset(self):
        self.matches: Dict[re.Pattern, Counter] = {pattern: Counter() for pattern in self.filters}

    def add_filter(self, pattern: Union[str, re.Pattern], group: int = 0) -> 'PatternHandler':
        """
        Collect group of every match of pattern.

        Returns:
            The handler itself, so calls can be chained
        """
        try:
            compiled = re.compile(pattern) if isinstance(pattern, str) else pattern
        except re.error as e:
            raise ValueError(f"Invalid pattern {pattern!r}: {e}") from e
        if group > compiled.groups:
            raise ValueError(f"Pattern {compiled.pattern!r} has no group {group}")
        # Clones share the filters dict, so register a new one instead of mutating.
        self.filters = {**self.filters, compiled: group}
        self.matches.setdefault(compiled, Counter())
        return self

    def merge(self, other: 'PatternHandler'):
        for pattern, counter in other.matches.items():
            self.matches.setdefault(pattern, Counter()).update(counter)

    def parse_page(self, page: Page) -> bool:
        if not page.is_character_content:
            return True
        content = page.content
        for pattern, group in self.filters.items():
            counter = self.matches[pattern]
            for match in pattern.finditer(content):
                value = match.group(group)
                if value is not None:
                    counter[value] += 1
        return True

    def _lookup(self, pattern: Union[str, re.Pattern]) -> re.Pattern:
        if isinstance(pattern, str):
            for compiled in self.filters:
                if compiled.pattern == pattern:
                    return compiled
            raise KeyError(pattern)
        return pattern

    def results(self, pattern: Union[str, re.Pattern]) -> List[str]:
        """Distinct matches found for pattern, sorted."""
        return sorted(self.matches[self._lookup(pattern)])

    def counts(self, pattern: Union[str, re.Pattern]) -> Counter:
        """Number of occurrences of each match of pattern."""
        return Counter(self.matches[self._lookup(pattern)])

    def all_results(self) -> List[str]:
        """Distinct matches across every pattern, sorted."""
        merged = set()
        for counter in self.matches.values():
            merged.update(counter)
        return sorted(merged)
