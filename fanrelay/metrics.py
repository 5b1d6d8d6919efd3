"""Prometheus collectors for relay activity.

Each app owns its own :class:`CollectorRegistry` so several apps (tests)
can live in one process without duplicate-timeseries errors.
"""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Gauge


class RelayMetrics:
    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry if registry is not None else CollectorRegistry()
        self.connections = Gauge(
            "relay_connections",
            "Connections currently registered for broadcast",
            registry=self.registry,
        )
        self.broadcasts = Counter(
            "relay_broadcasts_total",
            "Broadcasts performed",
            registry=self.registry,
        )
        self.deliveries = Counter(
            "relay_deliveries_total",
            "Messages accepted by a recipient",
            registry=self.registry,
        )
        self.failures = Counter(
            "relay_delivery_failures_total",
            "Sends that failed and unregistered the recipient",
            ["reason"],
            registry=self.registry,
        )
