"""
Monitoring and metrics collection for crawl runs.
"""

import time
import logging
from typing import Dict, Any, Optional
from dataclasses import dataclass, field, asdict

from prometheus_client import Counter, Histogram, Gauge, CollectorRegistry, generate_latest
from prometheus_client import start_http_server


@dataclass
class CrawlStats:
    """Statistics for one run of the fork/join engine."""
    start_time: float = field(default_factory=time.time)
    end_time: Optional[float] = None
    tasks: int = 0
    forks: int = 0
    rounds: int = 0
    merges: int = 0
    failed_tasks: int = 0
    visited: int = 0
    aborted: bool = False

    @property
    def elapsed_time(self) -> float:
        end = self.end_time if self.end_time is not None else time.time()
        return end - self.start_time

    @property
    def pages_per_minute(self) -> float:
        elapsed_minutes = self.elapsed_time / 60
        return self.visited / elapsed_minutes if elapsed_minutes > 0 else 0

    def finish(self, visited: int):
        self.visited = visited
        self.end_time = time.time()

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['elapsed_time'] = self.elapsed_time
        data['pages_per_minute'] = self.pages_per_minute
        return data


class MetricsCollector:
    """Publishes run statistics as Prometheus metrics."""

    def __init__(self, prometheus_port: int = 8000):
        self.logger = logging.getLogger(__name__)
        self.prometheus_port = prometheus_port
        self.registry = CollectorRegistry()
        self._server_started = False

        self.metrics = {
            'runs_total': Counter(
                'forkcrawl_runs_total',
                'Total number of completed crawl runs',
                ['outcome'],
                registry=self.registry
            ),
            'urls_visited_total': Counter(
                'forkcrawl_urls_visited_total',
                'Total number of URLs reserved and parsed',
                registry=self.registry
            ),
            'tasks_total': Counter(
                'forkcrawl_tasks_total',
                'Total number of crawl tasks executed',
                registry=self.registry
            ),
            'forks_total': Counter(
                'forkcrawl_forks_total',
                'Total number of child tasks forked',
                registry=self.registry
            ),
            'rounds_total': Counter(
                'forkcrawl_rounds_total',
                'Total number of task rounds',
                registry=self.registry
            ),
            'merges_total': Counter(
                'forkcrawl_merges_total',
                'Total number of merges into the root handler',
                registry=self.registry
            ),
            'task_failures_total': Counter(
                'forkcrawl_task_failures_total',
                'Total number of task branches ended by an internal error',
                registry=self.registry
            ),
            'run_duration_seconds': Histogram(
                'forkcrawl_run_duration_seconds',
                'Wall-clock duration of crawl runs',
                registry=self.registry
            ),
            'last_run_visited': Gauge(
                'forkcrawl_last_run_visited',
                'URLs visited by the most recent run',
                registry=self.registry
            ),
        }

    def start_server(self):
        """Start the Prometheus metrics HTTP server."""
        if self._server_started:
            return
        try:
            start_http_server(self.prometheus_port, registry=self.registry)
            self._server_started = True
            self.logger.info(f"Prometheus metrics server started on port {self.prometheus_port}")
        except OSError as e:
            self.logger.error(f"Failed to start Prometheus server: {e}")

    def record_run(self, stats: CrawlStats):
        """Fold the statistics of a finished run into the metrics."""
        outcome = 'aborted' if stats.aborted else 'completed'
        self.metrics['runs_total'].labels(outcome=outcome).inc()
        self.metrics['urls_visited_total'].inc(stats.visited)
        self.metrics['tasks_total'].inc(stats.tasks)
        self.metrics['forks_total'].inc(stats.forks)
        self.metrics['rounds_total'].inc(stats.rounds)
        self.metrics['merges_total'].inc(stats.merges)
        self.metrics['task_failures_total'].inc(stats.failed_tasks)
        self.metrics['run_duration_seconds'].observe(stats.elapsed_time)
        self.metrics['last_run_visited'].set(stats.visited)

    def export(self) -> bytes:
        """Render the registry in the Prometheus text format."""
        return generate_latest(self.registry)
