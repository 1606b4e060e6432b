from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping


@dataclass(frozen=True)
class HostBinding:
    host_ip: str = ""
    host_port: str = ""


PortBindings = Mapping[str, tuple[HostBinding, ...]]  # "80/tcp" -> bindings


@dataclass(frozen=True)
class DesiredContainerSpec:
    """Target state of one named container for a single reconciliation pass."""

    name: str
    image: str
    exposed_ports: frozenset[str] = frozenset()
    port_bindings: PortBindings = field(default_factory=dict)
    env: tuple[str, ...] = ()
    cmd: tuple[str, ...] = ()


@dataclass(frozen=True)
class ContainerSummary:
    id: str
    name: str
    image: str
    image_id: str
    state: str


@dataclass(frozen=True)
class ObservedContainer:
    """Inspection detail of a live container. ``id`` changes on recreation."""

    id: str
    name: str
    image: str
    image_id: str
    exposed_ports: frozenset[str] = frozenset()
    port_bindings: PortBindings = field(default_factory=dict)
    cmd: tuple[str, ...] | None = None
    env: tuple[str, ...] = ()
    state: str = ""


@dataclass(frozen=True)
class LocalImage:
    id: str
    repo_tags: tuple[str, ...] = ()
    repo_digests: tuple[str, ...] = ()


class DecisionKind(str, Enum):
    NOOP = "noop"
    CREATE = "create"
    RECREATE = "recreate"
    REMOVE_PRUNED = "remove-pruned"


@dataclass(frozen=True)
class ReconciliationDecision:
    kind: DecisionKind
    mismatched: tuple[str, ...] = ()
    reason: str = ""

    @classmethod
    def noop(cls) -> ReconciliationDecision:
        return cls(DecisionKind.NOOP)

    @classmethod
    def create(cls) -> ReconciliationDecision:
        return cls(DecisionKind.CREATE)

    @classmethod
    def recreate(cls, mismatched: tuple[str, ...] = (), reason: str = "config-drift") -> ReconciliationDecision:
        return cls(DecisionKind.RECREATE, tuple(mismatched), reason)

    @classmethod
    def remove_pruned(cls) -> ReconciliationDecision:
        return cls(DecisionKind.REMOVE_PRUNED, reason="not-desired")


@dataclass
class ReconcileReport:
    decisions: dict[str, ReconciliationDecision] = field(default_factory=dict)
    created: list[str] = field(default_factory=list)
    recreated: list[str] = field(default_factory=list)
    refreshed: list[str] = field(default_factory=list)  # recreated because the image was stale
    started: list[str] = field(default_factory=list)
    pruned: list[str] = field(default_factory=list)
    failures: dict[str, Exception] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures


@dataclass(frozen=True)
class ContainerStatsSample:
    container_id: str
    container_name: str
    cpu_total: int = 0
    precpu_total: int = 0
    system_usage: int = 0
    presystem_usage: int = 0
    online_cpus: int = 1
    memory_usage: int = 0
    memory_max_usage: int = 0
    memory_limit: int = 0
    memory_cache: int = 0
    memory_rss: int = 0
    networks: Mapping[str, tuple[int, int]] = field(default_factory=dict)  # iface -> (rx, tx)
    blkio: tuple[tuple[str, int], ...] = ()  # (op, value)


@dataclass(frozen=True)
class DerivedMetrics:
    container_id: str
    container_name: str
    cpu_percent: float
    memory_usage: float
    memory_max_usage: float
    memory_limit: float
    memory_cache: float
    memory_rss: float
    memory_usage_overall: float
    network_rx_bytes: float
    network_tx_bytes: float
    block_io_read_bytes: float
    block_io_write_bytes: float

    @property
    def labels(self) -> tuple[str, str]:
        return self.container_id, self.container_name
