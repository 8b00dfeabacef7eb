"""
Prometheus metrics for the acquisition service.
"""

from datetime import datetime, timezone
from typing import Optional

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Enum,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)

from ..config.logging_config import get_logger

logger = get_logger(__name__)


class PrometheusMetrics:
    """Metrics collector with its own registry so instances never collide."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()
        self._setup_metrics()

    def _setup_metrics(self):
        self.jobs_total = Counter(
            "tubevault_jobs_total",
            "Acquisition jobs that reached a terminal status",
            ["status", "kind"],
            registry=self.registry
        )

        self.acquisitions_active = Gauge(
            "tubevault_acquisitions_active",
            "Fetcher downloads currently running",
            registry=self.registry
        )

        self.acquisitions_queued = Gauge(
            "tubevault_acquisitions_queued",
            "Jobs waiting for a free acquisition slot",
            registry=self.registry
        )

        self.acquisition_duration = Histogram(
            "tubevault_acquisition_duration_seconds",
            "Wall time of a single acquisition",
            ["status"],
            buckets=[1, 5, 10, 30, 60, 120, 300, 600, 1800, 3600],
            registry=self.registry
        )

        self.observers_connected = Gauge(
            "tubevault_observers_connected",
            "Connected push-channel observers",
            registry=self.registry
        )

        self.observers_pruned_total = Counter(
            "tubevault_observers_pruned_total",
            "Observers dropped after a failed send",
            registry=self.registry
        )

        self.cleanup_failures_total = Counter(
            "tubevault_cleanup_failures_total",
            "Files that could not be deleted during cancellation cleanup",
            registry=self.registry
        )

        self.app_info = Info(
            "tubevault_app",
            "Application information",
            registry=self.registry
        )

        self.app_status = Enum(
            "tubevault_app_status",
            "Application status",
            states=["starting", "running", "stopping", "stopped"],
            registry=self.registry
        )

    def record_acquisition_started(self):
        self.acquisitions_active.inc()

    def record_acquisition_finished(self, status: str, duration: float):
        self.acquisitions_active.dec()
        self.acquisition_duration.labels(status=status).observe(duration)

    def record_job_finished(self, status: str, is_batch: bool = False):
        self.jobs_total.labels(status=status, kind="batch" if is_batch else "single").inc()
        logger.debug(f"Job finished: {status}")

    def record_observer_pruned(self, observer_id: str = ""):
        self.observers_pruned_total.inc()

    def record_cleanup_failure(self):
        self.cleanup_failures_total.inc()

    def set_app_info(self, version: str, environment: str):
        self.app_info.info({
            "version": version,
            "environment": environment,
            "started_at": datetime.now(timezone.utc).isoformat(),
        })

    def set_app_status(self, status: str):
        self.app_status.state(status)
        logger.info(f"Application status set to: {status}")

    def get_metrics(self) -> str:
        """Metrics in Prometheus text format."""
        return generate_latest(self.registry).decode("utf-8")

    def get_content_type(self) -> str:
        return CONTENT_TYPE_LATEST
