"""Observability layer: metrics. No external SaaS."""

from billing_pipeline.observability.metrics import MetricsCollector, MetricsSink

__all__ = [
    "MetricsCollector",
    "MetricsSink",
]
