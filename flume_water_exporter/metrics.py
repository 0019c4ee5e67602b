"""Metric sinks backed by prometheus_client."""

from __future__ import annotations

from typing import Mapping, Protocol

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

from .const import METRIC_NAMESPACE

GAUGES = {
    "bridge_connected": ("Flume bridge is connected to Flume", ["location"]),
    "bridge_product_info": ("Flume bridge product", ["location", "product"]),
    "sensor_connected": ("Flume sensor is connected to Flume", ["location"]),
    "sensor_product_info": ("Flume sensor product", ["location", "product"]),
    "sensor_battery_info": ("Flume sensor battery level", ["location"]),
    "budget_liters": ("Flume budget limit in liters", ["location", "period", "name"]),
}

COUNTERS = {
    "usage_liters": ("Water usage in liters", ["location"]),
}


class MetricSink(Protocol):
    """Destination for the values the poller publishes."""

    def set_gauge(self, name: str, labels: Mapping[str, str], value: float) -> None:
        ...

    def increment_counter(self, name: str, labels: Mapping[str, str], delta: float) -> None:
        ...


class PrometheusSink:
    """MetricSink that registers its gauges and counters in a registry."""

    def __init__(self, registry: CollectorRegistry) -> None:
        self.registry = registry
        self._gauges = {
            name: Gauge(
                name,
                documentation,
                labelnames,
                namespace=METRIC_NAMESPACE,
                registry=registry,
            )
            for name, (documentation, labelnames) in GAUGES.items()
        }
        self._counters = {
            name: Counter(
                name,
                documentation,
                labelnames,
                namespace=METRIC_NAMESPACE,
                registry=registry,
            )
            for name, (documentation, labelnames) in COUNTERS.items()
        }

    def set_gauge(self, name: str, labels: Mapping[str, str], value: float) -> None:
        """Set gauge ``name`` for ``labels``.

        Raises:
            KeyError: If no gauge called ``name`` exists.
        """
        self._gauges[name].labels(**labels).set(value)

    def increment_counter(self, name: str, labels: Mapping[str, str], delta: float) -> None:
        """Add ``delta`` to counter ``name`` for ``labels``.

        Raises:
            KeyError: If no counter called ``name`` exists.
            ValueError: If ``delta`` is negative.
        """
        self._counters[name].labels(**labels).inc(delta)


class ClientMetrics:
    """Request, error and latency instruments for the API client."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        if registry is None:
            registry = CollectorRegistry()
        self.requests = Counter(
            "http_requests",
            "Number of HTTP requests made to the Flume API",
            ["request_name"],
            namespace=METRIC_NAMESPACE,
            registry=registry,
        )
        self.errors = Counter(
            "http_request_errors",
            "Number of HTTP request errors returned by the Flume API",
            ["request_name", "error_type"],
            namespace=METRIC_NAMESPACE,
            registry=registry,
        )
        self.durations = Histogram(
            "http_request_duration_seconds",
            "Flume API request durations",
            ["request_name"],
            namespace=METRIC_NAMESPACE,
            registry=registry,
        )
