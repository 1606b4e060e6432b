from __future__ import annotations

from threading import Lock
from typing import Iterable

from prometheus_client import CollectorRegistry, Gauge, generate_latest

from .models import DerivedMetrics

LABELS = ("container_id", "container_name")

# attribute on DerivedMetrics -> (metric name, help)
GAUGES: dict[str, tuple[str, str]] = {
    "cpu_percent": ("docker_cpu_usage_total", "CPU usage of Docker containers in percent"),
    "memory_usage": ("docker_memory_usage", "Memory usage of Docker containers"),
    "memory_max_usage": ("docker_memory_max_usage", "Maximum memory usage of Docker containers"),
    "memory_limit": ("docker_memory_limit", "Memory limit of Docker containers"),
    "memory_cache": ("docker_memory_cache", "Cache memory usage of Docker containers"),
    "memory_rss": ("docker_memory_rss", "RSS memory usage of Docker containers"),
    "memory_usage_overall": ("docker_memory_usage_overall", "Overall memory usage (usage minus cache) of Docker containers"),
    "network_rx_bytes": ("docker_network_rx_bytes", "Network received bytes of Docker containers"),
    "network_tx_bytes": ("docker_network_tx_bytes", "Network transmitted bytes of Docker containers"),
    "block_io_read_bytes": ("docker_block_io_read_bytes", "Block IO read bytes of Docker containers"),
    "block_io_write_bytes": ("docker_block_io_write_bytes", "Block IO write bytes of Docker containers"),
}


class DockerMetrics:
    """Gauges labelled by (container_id, container_name).

    Each scrape overwrites the previous value. Series of containers that
    disappeared keep their last value until :meth:`sweep` is called.
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        self.registry = registry or CollectorRegistry()
        self.gauges: dict[str, Gauge] = {
            attr: Gauge(name, help_text, LABELS, registry=self.registry) for attr, (name, help_text) in GAUGES.items()
        }
        self._lock = Lock()
        self._series: set[tuple[str, str]] = set()

    def update(self, m: DerivedMetrics) -> None:
        for attr, gauge in self.gauges.items():
            gauge.labels(*m.labels).set(getattr(m, attr))
        with self._lock:
            self._series.add(m.labels)

    def sweep(self, live: Iterable[tuple[str, str]]) -> list[tuple[str, str]]:
        """Drop every label set not in ``live``; returns what was dropped."""
        live = set(live)
        with self._lock:
            stale = sorted(self._series - live)
            self._series -= set(stale)
        for labels in stale:
            for gauge in self.gauges.values():
                try:
                    gauge.remove(*labels)
                except KeyError:
                    pass
        return stale

    def render(self) -> bytes:
        return generate_latest(self.registry)
