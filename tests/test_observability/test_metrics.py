"""Tests for metrics and logging setup."""

import structlog
from prometheus_client import REGISTRY

from src.ingestion.schemas import Platform
from src.observability.logging import (
    bind_context,
    clear_context,
    setup_logging,
    source_context,
)
from src.observability.metrics import get_metrics


def _sample(name: str, labels: dict | None = None) -> float:
    return REGISTRY.get_sample_value(name, labels or {}) or 0.0


class TestMetricsCollector:
    """Tests for the global MetricsCollector."""

    def test_singleton(self):
        assert get_metrics() is get_metrics()

    def test_items_synced_accepts_enum_and_str(self):
        metrics = get_metrics()
        name = "thread_archive_items_synced_total"
        before = _sample(name, {"platform": "telegram"})

        metrics.record_items_synced(Platform.TELEGRAM, 3, latency=1.5)
        metrics.record_items_synced("telegram", 2)

        assert _sample(name, {"platform": "telegram"}) == before + 5

    def test_unresolved_ignores_zero(self):
        metrics = get_metrics()
        name = "thread_archive_unresolved_threads_total"
        before = _sample(name)

        metrics.record_unresolved(0)
        metrics.record_unresolved(4)

        assert _sample(name) == before + 4

    def test_cache_results(self):
        metrics = get_metrics()
        labels = {"route": "search", "result": "hit"}
        before = _sample("thread_archive_cache_requests_total", labels)

        metrics.record_cache("search", "hit")

        assert _sample("thread_archive_cache_requests_total", labels) == before + 1


class TestLogging:
    def test_context_bound_and_cleared(self):
        setup_logging()
        clear_context()

        bind_context(platform="twitter", handle="zachxbt")
        assert structlog.contextvars.get_contextvars() == {
            "platform": "twitter",
            "handle": "zachxbt",
        }

        clear_context()
        assert structlog.contextvars.get_contextvars() == {}

    def test_source_context_unbinds_on_exit(self):
        clear_context()
        bind_context(request_id="r1")

        with source_context("telegram", "investigations", "backfill"):
            assert structlog.contextvars.get_contextvars() == {
                "request_id": "r1",
                "platform": "telegram",
                "handle": "investigations",
                "mode": "backfill",
            }

        assert structlog.contextvars.get_contextvars() == {"request_id": "r1"}
        clear_context()
