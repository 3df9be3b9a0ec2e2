# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Prometheus metrics exposed by the dispatch proxy."""

from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest


class ProxyMetrics:
    """Wrapper around the Prometheus registry used by the service."""

    def __init__(self, registry: CollectorRegistry | None = None):
        """Create counters and gauges inside the provided registry."""
        self.registry = registry or CollectorRegistry()
        self.dispatched = Counter("wap_dispatched_total", "Messages handed to the transport", registry=self.registry)
        self.delivered = Counter("wap_delivered_total", "Messages acknowledged by the transport", registry=self.registry)
        self.failed = Counter("wap_failed_total", "Failed delivery attempts", ["reason"], registry=self.registry)
        self.permanently_failed = Counter(
            "wap_permanently_failed_total", "Messages dropped after exhausting retries", registry=self.registry
        )
        self.reconnects = Counter("wap_reconnects_total", "Transport reconnect attempts", registry=self.registry)
        self.pending = Gauge("wap_pending_messages", "Current pending messages", registry=self.registry)
        self.in_flight = Gauge("wap_in_flight_messages", "Messages currently being attempted", registry=self.registry)
        self.connected = Gauge("wap_connected", "1 when the transport session is usable", registry=self.registry)

    def inc_dispatched(self):
        self.dispatched.inc()

    def inc_delivered(self):
        self.delivered.inc()

    def inc_failed(self, reason: str | None):
        """Increase the ``failed`` counter, labelled by error code."""
        self.failed.labels(reason=reason or "unknown").inc()

    def inc_permanently_failed(self):
        self.permanently_failed.inc()

    def inc_reconnect(self):
        self.reconnects.inc()

    def set_queue(self, pending: int, in_flight: int):
        """Update the gauges tracking the queue."""
        self.pending.set(pending)
        self.in_flight.set(in_flight)

    def set_connected(self, connected: bool):
        self.connected.set(1 if connected else 0)

    def generate_latest(self) -> bytes:
        """Return the latest metrics snapshot in Prometheus text format."""
        return generate_latest(self.registry)
