#!/usr/bin/env python3
"""
Command-line entry point: crawl the configured seed URLs and print every
match of the configured patterns.
"""

import asyncio
import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from forkcrawl import __version__
from forkcrawl.crawler import CrawlerScheduler, PageFetcher
from forkcrawl.handlers import PatternHandler
from forkcrawl.utils.config import (
    Config, ConfigurationError, load_config, validate_budget, validate_concurrency
)
from forkcrawl.utils.logger import setup_logging
from forkcrawl.utils.monitoring import MetricsCollector


class CrawlerApp:
    """Main application class for the command-line crawler."""

    def __init__(self):
        self.scheduler: Optional[CrawlerScheduler] = None
        self.logger = logging.getLogger(__name__)

    def build_handler(self, config: Config) -> PatternHandler:
        fetcher = PageFetcher(
            user_agent=config.fetcher.user_agent,
            request_timeout=config.fetcher.request_timeout,
            max_concurrent_requests=config.fetcher.max_concurrent_requests
        )
        handler = PatternHandler(fetcher)
        for item in config.handler.patterns:
            handler.add_filter(item.pattern, item.group)
        return handler

    async def run(self, config: Config, dry_run: bool = False) -> int:
        """Run the crawler."""
        setup_logging(vars(config.logging), enable_json=config.logging.json)

        self.logger.info("=== FORKCRAWL STARTING ===")
        self.logger.info(f"Seed URLs: {config.crawler.seed_urls}")
        self.logger.info(f"Chunk size: {config.crawler.chunk_size or 'forking disabled'}")
        self.logger.info(f"Budget: {config.crawler.budget or 'unbounded (single round)'}")
        self.logger.info(f"Concurrency: {config.crawler.concurrency or 'CPU count'}")

        try:
            handler = self.build_handler(config)
        except ValueError as e:
            self.logger.error(f"Invalid handler pattern: {e}")
            return 1

        if dry_run:
            self.logger.info("DRY RUN MODE: configuration is valid, no crawling performed")
            return 0

        metrics = None
        if config.monitoring.metrics_enabled:
            metrics = MetricsCollector(config.monitoring.prometheus_port)
            metrics.start_server()

        self.scheduler = CrawlerScheduler.from_config(config, handler, metrics)
        try:
            await self.scheduler.crawl(config.crawler.seed_urls, config.crawler.concurrency)
        except ConfigurationError as e:
            self.logger.error(f"Configuration error: {e}")
            return 1
        finally:
            self.logger.info("=== FORKCRAWL FINISHED ===")

        for match in handler.all_results():
            print(match)
        return 0


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Fork/join web crawler",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py                           # Run with default config.yaml
  python main.py --config my_config.yaml  # Run with custom config
  python main.py --budget 500             # Visit at most 500 URLs
  python main.py --chunk-size 0           # Crawl sequentially in one task
  python main.py --dry-run                # Validate configuration only
        """
    )

    parser.add_argument(
        '--config',
        default='config.yaml',
        help='Path to configuration file (default: config.yaml)'
    )

    parser.add_argument(
        '--chunk-size',
        type=int,
        help='URLs per task before forking (<= 0 disables forking)'
    )

    parser.add_argument(
        '--budget',
        type=int,
        help='Maximum number of URLs to visit'
    )

    parser.add_argument(
        '--concurrency',
        type=int,
        help='Number of workers (0 uses the CPU count)'
    )

    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Validate configuration without crawling'
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'forkcrawl {__version__}'
    )

    args = parser.parse_args()

    if not Path(args.config).exists():
        print(f"Error: Configuration file '{args.config}' not found.")
        print("Please create a config.yaml file or specify a different path with --config")
        return 1

    try:
        config = load_config(args.config)
        if args.chunk_size is not None:
            config.crawler.chunk_size = max(args.chunk_size, 0)
        if args.budget is not None:
            config.crawler.budget = args.budget
        if args.concurrency is not None:
            config.crawler.concurrency = args.concurrency
        validate_budget(config.crawler.budget)
        validate_concurrency(config.crawler.concurrency)
    except ConfigurationError as e:
        print(f"Configuration error: {e}")
        return 1

    app = CrawlerApp()
    try:
        return asyncio.run(app.run(config, dry_run=args.dry_run))
    except ConfigurationError as e:
        print(f"Configuration error: {e}")
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 1


if __name__ == '__main__':
    sys.exit(main())
