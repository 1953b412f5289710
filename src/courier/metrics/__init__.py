"""In-process delivery metrics."""

from courier.metrics.collector import MetricsCollector

__all__ = ["MetricsCollector"]
