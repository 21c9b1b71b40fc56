"""
Prometheus metrics for monitoring the archive.

Defines and exposes metrics for:
- Items archived per platform
- Sync errors and latency per source run
- Thread resolution data quality
- Response cache hit rate
- Storage latency

Metrics are exposed via HTTP endpoint for Prometheus scraping.
"""

import logging

from prometheus_client import (
    REGISTRY,
    Counter,
    Histogram,
    start_http_server,
)

from src.config.settings import get_settings
from src.ingestion.schemas import Platform

logger = logging.getLogger(__name__)

# Buckets for latency histograms (in seconds)
LATENCY_BUCKETS = (0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)

# Source runs page through remote APIs and take much longer
SYNC_LATENCY_BUCKETS = (0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0)


class MetricsCollector:
    """
    Prometheus metrics collector for thread-archive.

    Usage:
        metrics = get_metrics()
        metrics.start_server()

        metrics.record_items_synced("twitter", 120, latency=3.2)
        metrics.storage_latency.labels(operation="message_batch").observe(0.05)
    """

    def __init__(self):
        self.items_synced = Counter(
            "thread_archive_items_synced_total",
            "Total number of items submitted to storage by sync runs",
            ["platform"],
        )

        self.sync_errors = Counter(
            "thread_archive_sync_errors_total",
            "Total failed source runs",
            ["platform", "error_type"],
        )

        self.sync_latency = Histogram(
            "thread_archive_sync_latency_seconds",
            "Time to sync one source",
            ["platform"],
            buckets=SYNC_LATENCY_BUCKETS,
        )

        self.unresolved_threads = Counter(
            "thread_archive_unresolved_threads_total",
            "Messages stored as singleton threads after hitting the depth cap",
        )

        self.cache_requests = Counter(
            "thread_archive_cache_requests_total",
            "Response cache lookups",
            ["route", "result"],  # result: hit, miss, error
        )

        self.storage_latency = Histogram(
            "thread_archive_storage_latency_seconds",
            "Time spent in database operations",
            ["operation"],  # tweet_batch, message_batch, search, latest
            buckets=LATENCY_BUCKETS,
        )

        logger.info("Prometheus metrics initialized")

    def start_server(self, port: int | None = None) -> None:
        """
        Start Prometheus metrics HTTP server.

        Args:
            port: Port to expose metrics on (default from settings)
        """
        settings = get_settings()
        port = port or settings.metrics_port

        start_http_server(port, registry=REGISTRY)
        logger.info(f"Prometheus metrics server started on port {port}")

    # Convenience methods

    def record_items_synced(
        self,
        platform: Platform | str,
        count: int,
        latency: float | None = None,
    ) -> None:
        """
        Record a finished source run.

        Args:
            platform: Source platform
            count: Number of items submitted
            latency: Optional run duration in seconds
        """
        platform_str = platform.value if isinstance(platform, Platform) else platform
        self.items_synced.labels(platform=platform_str).inc(count)

        if latency is not None:
            self.sync_latency.labels(platform=platform_str).observe(latency)

    def record_sync_error(self, platform: Platform | str, error_type: str) -> None:
        platform_str = platform.value if isinstance(platform, Platform) else platform
        self.sync_errors.labels(platform=platform_str, error_type=error_type).inc()

    def record_unresolved(self, count: int) -> None:
        if count > 0:
            self.unresolved_threads.inc(count)

    def record_cache(self, route: str, result: str) -> None:
        """
        Record a response cache lookup.

        Args:
            route: Route name (search, home)
            result: hit, miss or error
        """
        self.cache_requests.labels(route=route, result=result).inc()

    def record_storage_latency(self, operation: str, latency: float) -> None:
        self.storage_latency.labels(operation=operation).observe(latency)


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
