from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any

from .docker_ops import ContainerEngine
from .errors import ContainerStatsError
from .models import ContainerStatsSample, ContainerSummary, DerivedMetrics
from .settings import settings

logger = logging.getLogger(__name__)


def parse_stats(payload: dict[str, Any], container_id: str = "", container_name: str = "") -> ContainerStatsSample:
    """Flatten one engine stats document into a sample."""
    cpu = payload.get("cpu_stats") or {}
    precpu = payload.get("precpu_stats") or {}
    usage = cpu.get("cpu_usage") or {}
    preusage = precpu.get("cpu_usage") or {}
    # cgroup v2 hosts drop percpu_usage, online_cpus is always there on current engines.
    online_cpus = cpu.get("online_cpus") or len(usage.get("percpu_usage") or ()) or 1

    mem = payload.get("memory_stats") or {}
    mem_stats = mem.get("stats") or {}

    networks = {
        iface: (int(v.get("rx_bytes") or 0), int(v.get("tx_bytes") or 0))
        for iface, v in (payload.get("networks") or {}).items()
    }
    blkio = tuple(
        (str(e.get("op") or ""), int(e.get("value") or 0))
        for e in ((payload.get("blkio_stats") or {}).get("io_service_bytes_recursive") or ())
    )

    return ContainerStatsSample(
        container_id=payload.get("id") or container_id,
        container_name=(payload.get("name") or container_name).lstrip("/"),
        cpu_total=int(usage.get("total_usage") or 0),
        precpu_total=int(preusage.get("total_usage") or 0),
        system_usage=int(cpu.get("system_cpu_usage") or 0),
        presystem_usage=int(precpu.get("system_cpu_usage") or 0),
        online_cpus=int(online_cpus),
        memory_usage=int(mem.get("usage") or 0),
        memory_max_usage=int(mem.get("max_usage") or 0),
        memory_limit=int(mem.get("limit") or 0),
        memory_cache=int(mem_stats.get("cache") or 0),
        memory_rss=int(mem_stats.get("rss") or 0),
        networks=networks,
        blkio=blkio,
    )


def cpu_percent(sample: ContainerStatsSample) -> float:
    system_delta = sample.system_usage - sample.presystem_usage
    if system_delta <= 0:
        return 0.0
    cpu_delta = sample.cpu_total - sample.precpu_total
    return (cpu_delta / system_delta) * sample.online_cpus * 100.0


def overall_memory(sample: ContainerStatsSample) -> float:
    # Page cache is reclaimable, so it is left out of the headline figure.
    return float(sample.memory_usage - sample.memory_cache)


def block_io_totals(sample: ContainerStatsSample) -> tuple[int, int]:
    read = write = 0
    for op, value in sample.blkio:
        op = op.lower()
        if op == "read":
            read += value
        elif op == "write":
            write += value
    return read, write


def derive(sample: ContainerStatsSample) -> DerivedMetrics:
    rx = sum(r for r, _ in sample.networks.values())
    tx = sum(t for _, t in sample.networks.values())
    blk_read, blk_write = block_io_totals(sample)
    return DerivedMetrics(
        container_id=sample.container_id,
        container_name=sample.container_name,
        cpu_percent=cpu_percent(sample),
        memory_usage=float(sample.memory_usage),
        memory_max_usage=float(sample.memory_max_usage),
        memory_limit=float(sample.memory_limit),
        memory_cache=float(sample.memory_cache),
        memory_rss=float(sample.memory_rss),
        memory_usage_overall=overall_memory(sample),
        network_rx_bytes=float(rx),
        network_tx_bytes=float(tx),
        block_io_read_bytes=float(blk_read),
        block_io_write_bytes=float(blk_write),
    )


class StatsAggregator:
    """Fetches one stats sample per container on a bounded thread pool."""

    def __init__(self, engine: ContainerEngine, max_workers: int = settings.stats_workers):
        self.engine = engine
        self.max_workers = max(1, int(max_workers))

    def _fetch(self, c: ContainerSummary) -> ContainerStatsSample:
        return parse_stats(self.engine.container_stats(c.id), container_id=c.id, container_name=c.name)

    def collect(self, containers: list[ContainerSummary]) -> tuple[list[DerivedMetrics], list[ContainerStatsError]]:
        """Return derived metrics for every container that answered, plus one error per container that did not.

        Every submitted query ends up in exactly one of the two lists.
        """
        if not containers:
            return [], []

        samples: list[ContainerStatsSample] = []
        errors: list[ContainerStatsError] = []
        workers = min(self.max_workers, len(containers))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="dcm-stats") as executor:
            futures = {executor.submit(self._fetch, c): c for c in containers}
            for future in as_completed(futures):
                c = futures[future]
                try:
                    samples.append(future.result())
                except Exception as e:
                    errors.append(ContainerStatsError(c.id, e))
                    continue
                logger.debug("Fetched stats for container %s", c.id)

        return [derive(s) for s in samples], errors
