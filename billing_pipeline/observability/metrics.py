"""Metrics sink. Thread-safe, in-memory, dimension-keyed. No CloudWatch or Prometheus dependency."""

import threading
import time
from contextlib import contextmanager
from typing import Any, Iterator, Mapping, Optional, Protocol


class MetricsSink(Protocol):
    """Accepts (name, value, unit, dimensions) tuples."""

    def put_metric(
        self,
        name: str,
        value: float,
        unit: str = "None",
        dimensions: Optional[Mapping[str, str]] = None,
    ) -> None: ...


def _series_key(name: str, dimensions: Optional[Mapping[str, str]]) -> str:
    if not dimensions:
        return name
    labels = ",".join(f"{k}={dimensions[k]}" for k in sorted(dimensions))
    return f"{name}:{labels}"


class MetricsCollector:
    """
    In-memory registry. Counters (unit Count) are summed per series; every other
    unit is kept as a list of observations (histogram-style) per series.
    Exposes put_metric, increment, observe_latency, timer, export_metrics.
    """

    def __init__(self, namespace: str = "BillingPipeline", default_dimensions: Optional[Mapping[str, str]] = None) -> None:
        self.namespace = namespace
        self._default_dimensions = dict(default_dimensions or {})
        self._lock = threading.Lock()
        self._counters: dict[str, float] = {}
        self._histograms: dict[str, list[float]] = {}
        self._units: dict[str, str] = {}

    def put_metric(
        self,
        name: str,
        value: float,
        unit: str = "None",
        dimensions: Optional[Mapping[str, str]] = None,
    ) -> None:
        dims = {**self._default_dimensions, **(dimensions or {})}
        key = _series_key(name, dims)
        with self._lock:
            self._units[name] = unit
            if unit == "Count":
                self._counters[key] = self._counters.get(key, 0) + value
            else:
                self._histograms.setdefault(key, []).append(value)

    def increment(self, name: str, value: float = 1.0, **dimensions: str) -> None:
        """Increment a counter. Keyword arguments become dimensions."""
        self.put_metric(name, value, "Count", dimensions)

    def observe_latency(self, name: str, latency_ms: float, **dimensions: str) -> None:
        """Record a latency observation in milliseconds."""
        self.put_metric(name, latency_ms, "Milliseconds", dimensions)

    @contextmanager
    def timer(self, operation: str, **dimensions: str) -> Iterator[None]:
        """Record elapsed time of the block as <operation>_time."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.observe_latency(f"{operation}_time", (time.perf_counter() - start) * 1000, **dimensions)

    def counter_value(self, name: str, **dimensions: str) -> float:
        """Sum of a counter across all series matching the given dimensions."""
        with self._lock:
            total = 0.0
            for key, value in self._counters.items():
                series, _, labels = key.partition(":")
                if series != name:
                    continue
                parts = dict(p.split("=", 1) for p in labels.split(",") if p)
                if all(parts.get(k) == v for k, v in dimensions.items()):
                    total += value
            return total

    def export_metrics(self) -> dict[str, Any]:
        """Export all metrics as a dict."""
        with self._lock:
            return {
                "namespace": self.namespace,
                "counters": dict(self._counters),
                "histograms": {
                    k: {
                        "count": len(v),
                        "sum": sum(v),
                        "values": list(v),
                    }
                    for k, v in self._histograms.items()
                },
                "units": dict(self._units),
            }

    def reset(self) -> None:
        """Reset all metrics (for tests)."""
        with self._lock:
            self._counters.clear()
            self._histograms.clear()
            self._units.clear()
