"""GPU usage aggregation.

Pure, single-pass aggregation of per-pod GPU claims and per-node GPU
capacity into namespace summaries, workload groups, node usage and cluster
totals. Nothing here performs I/O; the collector modules resolve raw API
objects into the records consumed here, and every function accepts any
well-typed input without raising.
"""

import enum
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

WORKLOAD_SUFFIX_PATTERN = re.compile(r"-[a-z0-9]{5,10}(-[a-z0-9]{5})?$")

HIGH_PRIORITY_THRESHOLD = 1_000_000

RUNNING_GLYPH = "█"
PENDING_GLYPH = "▓"
AVAILABLE_GLYPH = "░"


class Phase(str, enum.Enum):
    """Kubernetes pod lifecycle phase."""

    RUNNING = "Running"
    PENDING = "Pending"
    FAILED = "Failed"
    SUCCEEDED = "Succeeded"
    UNKNOWN = "Unknown"

    @classmethod
    def resolve(cls, value: str | None) -> "Phase":
        """Map a raw phase string to a Phase, ``UNKNOWN`` when unrecognized."""
        for phase in cls:
            if phase.value == value:
                return phase
        return cls.UNKNOWN


# Phases whose claims still hold (or wait for) their GPUs.
REQUESTING_PHASES = frozenset({Phase.RUNNING, Phase.PENDING, Phase.FAILED})


def derive_workload_key(pod_name: str) -> str:
    """Strip a generated replica suffix from a pod name.

    ``ms-decode-7f8b9c-abcde`` becomes ``ms-decode``; names without a
    ReplicaSet/Job style suffix are returned unchanged, and a suffix that
    would consume the whole name is left in place.
    """
    stripped = WORKLOAD_SUFFIX_PATTERN.sub("", pod_name, count=1)
    return stripped or pod_name


def classify_priority(priority: int | None) -> str:
    """Return the display class of a pod priority: high, system or low."""
    if priority is None:
        return "system"
    if priority >= HIGH_PRIORITY_THRESHOLD:
        return "high"
    if priority >= 0:
        return "system"
    return "low"


def _floor_pct(part: int, whole: int) -> int:
    if whole <= 0:
        return 0
    return part * 100 // whole


@dataclass(frozen=True)
class GpuClaim:
    """A pod's declared GPU request, already resolved by the collector."""

    namespace: str
    pod_name: str
    gpu_requested: int = 0
    phase: Phase = Phase.UNKNOWN
    node_name: str | None = None
    priority: int | None = None
    priority_class_name: str | None = None
    owner: str | None = None
    # Declared limits only; gpu_requested already falls back to the limit
    gpu_limit: int = 0

    @property
    def workload_key(self) -> str:
        return derive_workload_key(self.pod_name)

    @property
    def priority_class(self) -> str:
        return classify_priority(self.priority)


@dataclass(frozen=True)
class NodeCapacity:
    """Advertised GPU capacity of one node."""

    node_name: str
    gpu_count: int
    vendors: tuple[str, ...] = ()


@dataclass(frozen=True)
class GpuQuota:
    """GPU limit of one resource quota and how much of it is consumed."""

    namespace: str
    name: str
    resource: str
    hard: int
    used: int = 0

    @property
    def remaining(self) -> int:
        """Hard limit minus usage; negative when the quota was lowered below use."""
        return self.hard - self.used

    @property
    def used_pct(self) -> int:
        return _floor_pct(self.used, self.hard)


@dataclass(frozen=True)
class NamespaceSummary:
    """GPU totals of one namespace split by lifecycle phase."""

    namespace: str
    running_gpus: int = 0
    pending_gpus: int = 0
    failed_gpus: int = 0
    phase_counts: Mapping[Phase, int] = field(default_factory=dict)

    @property
    def total_requested_gpus(self) -> int:
        """GPUs held or awaited; succeeded and unknown claims are excluded."""
        return self.running_gpus + self.pending_gpus + self.failed_gpus


@dataclass(frozen=True)
class ClusterTotals:
    """Cluster-wide capacity and usage for one report."""

    total_capacity_gpus: int = 0
    total_running_gpus: int = 0
    total_requested_gpus: int = 0
    gpu_node_count: int = 0

    @property
    def available_gpus(self) -> int:
        """Capacity minus running GPUs; negative when over-subscribed."""
        return self.total_capacity_gpus - self.total_running_gpus

    @property
    def waiting_gpus(self) -> int:
        """Requested GPUs that are not running (pending or failed)."""
        return self.total_requested_gpus - self.total_running_gpus

    @property
    def utilization_pct(self) -> int:
        return _floor_pct(self.total_running_gpus, self.total_capacity_gpus)

    @property
    def waiting_pct(self) -> int:
        return _floor_pct(self.waiting_gpus, self.total_capacity_gpus)


@dataclass(frozen=True)
class WorkloadGroup:
    """Replica pods of one logical workload within a namespace."""

    namespace: str
    workload_key: str
    pod_count: int = 0
    running_gpus: int = 0
    total_gpus: int = 0
    priority: int | None = None
    phase_counts: Mapping[Phase, int] = field(default_factory=dict)

    @property
    def status(self) -> str:
        """Primary status: running beats pending, anything else is failed."""
        if self.phase_counts.get(Phase.RUNNING, 0):
            return "running"
        if self.phase_counts.get(Phase.PENDING, 0):
            return "pending"
        return "failed"

    @property
    def priority_class(self) -> str:
        return classify_priority(self.priority)


@dataclass(frozen=True)
class NodeUsage:
    """GPU capacity and running usage of one node."""

    node_name: str
    capacity: int = 0
    used: int = 0

    @property
    def available(self) -> int:
        return self.capacity - self.used

    @property
    def status(self) -> str:
        if self.used == 0:
            return "idle"
        if self.available > 0:
            return "partial"
        return "full"


@dataclass
class _NamespaceAccumulator:
    running: int = 0
    pending: int = 0
    failed: int = 0
    phase_counts: dict[Phase, int] = field(default_factory=dict)

    def add(self, claim: GpuClaim) -> None:
        gpus = max(claim.gpu_requested, 0)
        self.phase_counts[claim.phase] = self.phase_counts.get(claim.phase, 0) + 1
        if claim.phase is Phase.RUNNING:
            self.running += gpus
        elif claim.phase is Phase.PENDING:
            self.pending += gpus
        elif claim.phase is Phase.FAILED:
            self.failed += gpus

    def freeze(self, namespace: str) -> NamespaceSummary:
        return NamespaceSummary(
            namespace=namespace,
            running_gpus=self.running,
            pending_gpus=self.pending,
            failed_gpus=self.failed,
            phase_counts=dict(self.phase_counts),
        )


@dataclass
class _WorkloadAccumulator:
    pods: int = 0
    running: int = 0
    total: int = 0
    priority: int | None = None
    phase_counts: dict[Phase, int] = field(default_factory=dict)

    def add(self, claim: GpuClaim) -> None:
        gpus = max(claim.gpu_requested, 0)
        self.pods += 1
        self.total += gpus
        if claim.phase is Phase.RUNNING:
            self.running += gpus
        self.phase_counts[claim.phase] = self.phase_counts.get(claim.phase, 0) + 1
        # Highest priority among replicas
        if claim.priority is not None and (
            self.priority is None or claim.priority > self.priority
        ):
            self.priority = claim.priority

    def freeze(self, namespace: str, workload_key: str) -> WorkloadGroup:
        return WorkloadGroup(
            namespace=namespace,
            workload_key=workload_key,
            pod_count=self.pods,
            running_gpus=self.running,
            total_gpus=self.total,
            priority=self.priority,
            phase_counts=dict(self.phase_counts),
        )


def dedupe_claims(claims: Iterable[GpuClaim]) -> list[GpuClaim]:
    """Collapse repeated ``(namespace, pod_name)`` claims, last write wins.

    A repeated pod keeps the position of its first occurrence so that input
    order is otherwise preserved.
    """
    latest: dict[tuple[str, str], GpuClaim] = {}
    for claim in claims:
        latest[(claim.namespace, claim.pod_name)] = claim
    return list(latest.values())


def aggregate(
    claims: Iterable[GpuClaim],
    capacity: Iterable[NodeCapacity],
) -> tuple[dict[str, NamespaceSummary], ClusterTotals]:
    """Aggregate claims and node capacity into namespace and cluster totals.

    Args:
        claims: GPU claims in collection order. May be empty.
        capacity: Per-node advertised GPU capacity. May be empty.

    Returns:
        Tuple of (summaries, totals) where summaries maps namespace to its
        NamespaceSummary in lexicographic namespace order.
    """
    accumulators: dict[str, _NamespaceAccumulator] = {}
    for claim in dedupe_claims(claims):
        accumulators.setdefault(claim.namespace, _NamespaceAccumulator()).add(claim)

    summaries = {
        namespace: accumulators[namespace].freeze(namespace)
        for namespace in sorted(accumulators)
    }

    nodes: set[str] = set()
    total_capacity = 0
    for node in capacity:
        total_capacity += node.gpu_count
        nodes.add(node.node_name)

    totals = ClusterTotals(
        total_capacity_gpus=total_capacity,
        total_running_gpus=sum(s.running_gpus for s in summaries.values()),
        total_requested_gpus=sum(s.total_requested_gpus for s in summaries.values()),
        gpu_node_count=len(nodes),
    )
    return summaries, totals


def group_workloads(claims: Iterable[GpuClaim]) -> list[WorkloadGroup]:
    """Merge replica pods sharing a workload key within each namespace.

    Returns:
        Workload groups sorted by (namespace, workload_key).
    """
    accumulators: dict[tuple[str, str], _WorkloadAccumulator] = {}
    for claim in dedupe_claims(claims):
        key = (claim.namespace, claim.workload_key)
        accumulators.setdefault(key, _WorkloadAccumulator()).add(claim)

    return [accumulators[key].freeze(*key) for key in sorted(accumulators)]


def summarize_nodes(
    claims: Iterable[GpuClaim],
    capacity: Iterable[NodeCapacity],
) -> list[NodeUsage]:
    """Compare each GPU node's capacity with the running claims placed on it.

    Returns:
        Node usage sorted by node name. Claims on nodes absent from the
        capacity inventory are not reported here.
    """
    node_capacity: dict[str, int] = {}
    for node in capacity:
        node_capacity[node.node_name] = node_capacity.get(node.node_name, 0) + (
            node.gpu_count
        )

    used: dict[str, int] = {}
    for claim in dedupe_claims(claims):
        if claim.phase is Phase.RUNNING and claim.node_name in node_capacity:
            used[claim.node_name] = used.get(claim.node_name, 0) + max(
                claim.gpu_requested,
                0,
            )

    return [
        NodeUsage(node_name=name, capacity=node_capacity[name], used=used.get(name, 0))
        for name in sorted(node_capacity)
    ]


def render_bar(running_pct: int, pending_pct: int, width: int) -> str:
    """Render a fixed-width utilization bar.

    The running segment takes ``floor(running_pct * width / 100)`` glyphs,
    the pending segment ``floor(pending_pct * width / 100)`` and the rest is
    filled with available glyphs. Percentages are clamped to [0, 100] and
    the pending segment to whatever the running segment left, so the result
    is always exactly ``width`` characters long.
    """
    if width <= 0:
        return ""
    running_pct = min(max(running_pct, 0), 100)
    pending_pct = min(max(pending_pct, 0), 100)

    running = running_pct * width // 100
    pending = min(pending_pct * width // 100, width - running)
    available = width - running - pending
    return RUNNING_GLYPH * running + PENDING_GLYPH * pending + AVAILABLE_GLYPH * available
