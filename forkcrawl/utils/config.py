"""
Configuration management for forkcrawl.
"""

import yaml
import logging
from pathlib import Path
from typing import Dict, List, Any, Optional
from dataclasses import dataclass, field


class ConfigurationError(ValueError):
    """Invalid configuration. Raised before any crawling starts."""
    pass


@dataclass
class CrawlerConfig:
    """Configuration for the fork/join engine."""
    seed_urls: List[str] = field(default_factory=list)
    chunk_size: int = 0
    budget: Optional[int] = None
    concurrency: int = 0


@dataclass
class FetcherConfig:
    """Configuration for the HTTP fetcher."""
    user_agent: str = "forkcrawl/1.0 (+https://pypi.org/project/forkcrawl/)"
    request_timeout: int = 30
    max_concurrent_requests: int = 10


@dataclass
class PatternConfig:
    """A regular expression collected by the pattern handler."""
    pattern: str
    group: int = 0


@dataclass
class HandlerConfig:
    """Configuration for the bundled pattern handler."""
    patterns: List[PatternConfig] = field(default_factory=list)


@dataclass
class LoggingConfig:
    """Configuration for logging."""
    level: str = "INFO"
    file: Optional[str] = None
    format: str = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    json: bool = False


@dataclass
class MonitoringConfig:
    """Configuration for monitoring."""
    prometheus_port: int = 8000
    metrics_enabled: bool = False


@dataclass
class Config:
    """Main configuration class."""
    crawler: CrawlerConfig
    fetcher: FetcherConfig = field(default_factory=FetcherConfig)
    handler: HandlerConfig = field(default_factory=HandlerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)


def validate_budget(budget: Any) -> Optional[int]:
    """A budget is either unset or a positive integer."""
    if budget is None:
        return None
    if isinstance(budget, bool) or not isinstance(budget, int) or budget <= 0:
        raise ConfigurationError(f"budget must be a positive integer or unset, got {budget!r}")
    return budget


def validate_chunk_size(chunk_size: Any) -> int:
    """Any integer is a valid chunk size; values <= 0 disable forking."""
    if isinstance(chunk_size, bool) or not isinstance(chunk_size, int):
        raise ConfigurationError(f"chunk_size must be an integer, got {chunk_size!r}")
    return max(chunk_size, 0)


def validate_concurrency(concurrency: Any) -> int:
    """0 selects the CPU count, anything positive is a pool size."""
    if isinstance(concurrency, bool) or not isinstance(concurrency, int) or concurrency < 0:
        raise ConfigurationError(f"concurrency must be a non-negative integer, got {concurrency!r}")
    return concurrency


class ConfigManager:
    """Manages configuration loading and validation."""

    def __init__(self, config_path: str = "config.yaml"):
        self.config_path = Path(config_path)
        self._config: Optional[Config] = None

    def load_config(self) -> Config:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

        with open(self.config_path, 'r') as file:
            config_data = yaml.safe_load(file) or {}

        self._config = self.parse(config_data)
        self._validate_config()
        return self._config

    @staticmethod
    def parse(config_data: Dict[str, Any]) -> Config:
        """Build a Config from already-loaded YAML data."""
        try:
            crawler_config = CrawlerConfig(**(config_data.get('crawler') or {}))
            fetcher_config = FetcherConfig(**(config_data.get('fetcher') or {}))
            handler_data = config_data.get('handler') or {}
            handler_config = HandlerConfig(patterns=[
                PatternConfig(**item) if isinstance(item, dict) else PatternConfig(pattern=item)
                for item in handler_data.get('patterns', [])
            ])
            logging_config = LoggingConfig(**(config_data.get('logging') or {}))
            monitoring_config = MonitoringConfig(**(config_data.get('monitoring') or {}))
        except TypeError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

        return Config(
            crawler=crawler_config,
            fetcher=fetcher_config,
            handler=handler_config,
            logging=logging_config,
            monitoring=monitoring_config
        )

    def _validate_config(self):
        """Validate configuration values."""
        if not self._config:
            raise ConfigurationError("Configuration not loaded")

        crawler = self._config.crawler
        if not crawler.seed_urls:
            raise ConfigurationError("At least one seed URL must be provided")

        crawler.budget = validate_budget(crawler.budget)
        crawler.chunk_size = validate_chunk_size(crawler.chunk_size)
        crawler.concurrency = validate_concurrency(crawler.concurrency)

        if self._config.fetcher.request_timeout <= 0:
            raise ConfigurationError("request_timeout must be positive")

        if self._config.fetcher.max_concurrent_requests < 1:
            raise ConfigurationError("max_concurrent_requests must be at least 1")

        logging.info("Configuration validation passed")

    @property
    def config(self) -> Config:
        """Get the loaded configuration."""
        if not self._config:
            raise ConfigurationError("Configuration not loaded. Call load_config() first.")
        return self._config


# Global config manager instance
config_manager = ConfigManager()


def get_config() -> Config:
    """Get the global configuration instance."""
    return config_manager.config


def load_config(config_path: str = "config.yaml") -> Config:
    """Load configuration from file."""
    global config_manager
    config_manager = ConfigManager(config_path)
    return config_manager.load_config()
