"""Monitoring: Prometheus metrics."""

from .metrics import PrometheusMetrics

__all__ = ["PrometheusMetrics"]
