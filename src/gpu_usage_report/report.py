"""Plain-text GPU usage report.

Renders the aggregator's results as fixed-width tables ready for a
terminal. Rendering is deterministic: tables are ordered by namespace,
workload or node name, never by collection order.
"""

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass

from . import aggregator
from .aggregator import GpuClaim, GpuQuota, NodeCapacity, Phase

RULE_WIDTH = 80
DEFAULT_BAR_WIDTH = 30

# Display order of phases in the "pods" columns.
PHASE_ORDER = (Phase.RUNNING, Phase.PENDING, Phase.FAILED, Phase.SUCCEEDED, Phase.UNKNOWN)


@dataclass(frozen=True)
class RenderedReport:
    """Report sections as plain text, each without a trailing newline.

    ``bar`` holds the bare utilization bar; it is also part of ``overview``.
    """

    header: str
    overview: str
    bar: str
    nodes: str
    workloads: str
    namespaces: str
    quotas: str = ""
    pods: str | None = None

    def render(self) -> str:
        sections = [
            self.header,
            self.overview,
            self.nodes,
            self.workloads,
            self.namespaces,
        ]
        if self.quotas:
            sections.append(self.quotas)
        if self.pods is not None:
            sections.append(self.pods)
        return "\n\n".join(sections) + "\n"

    def __str__(self) -> str:
        return self.render()


def _fit(text: str, width: int) -> str:
    return text[:width]


def _rule(char: str = "-") -> str:
    return char * RULE_WIDTH


def format_phase_counts(phase_counts: Mapping[Phase, int] | None) -> str:
    """Format phase counts as "2 Running, 1 Pending", skipping zeros."""
    phase_counts = phase_counts or {}
    parts = [
        f"{phase_counts[phase]} {phase.value}"
        for phase in PHASE_ORDER
        if phase_counts.get(phase, 0)
    ]
    return ", ".join(parts) or "-"


def render_overview(totals: aggregator.ClusterTotals, bar_width: int) -> tuple[str, str]:
    """Render the cluster totals block.

    Returns:
        Tuple of (overview, bar) where bar is the bare utilization bar,
        also embedded as the last overview line.
    """
    bar = aggregator.render_bar(totals.utilization_pct, totals.waiting_pct, bar_width)
    legend = (
        f"{aggregator.RUNNING_GLYPH} running"
        f"  {aggregator.PENDING_GLYPH} pending/failed"
        f"  {aggregator.AVAILABLE_GLYPH} available"
    )
    lines = [
        "Cluster Overview",
        _rule(),
        f"  {'GPU nodes:':<22}{totals.gpu_node_count}",
        f"  {'Total GPUs:':<22}{totals.total_capacity_gpus}",
        f"  {'Running GPUs:':<22}{totals.total_running_gpus}",
        f"  {'Requested GPUs:':<22}{totals.total_requested_gpus}",
        f"  {'Pending/failed GPUs:':<22}{totals.waiting_gpus}",
        f"  {'Available GPUs:':<22}{totals.available_gpus}",
        f"  {'Utilization:':<22}{totals.utilization_pct}% running"
        f" + {totals.waiting_pct}% pending/failed",
        f"  [{bar}] {legend}",
    ]
    return "\n".join(lines), bar


def render_nodes(nodes: Sequence[aggregator.NodeUsage]) -> str:
    lines = ["GPU Nodes", _rule()]
    if not nodes:
        lines.append("  No GPU nodes found")
        return "\n".join(lines)
    lines.append(f"{'NODE':<30} {'GPUS':>5} {'USED':>5} {'AVAILABLE':>9}  STATUS")
    for node in nodes:
        lines.append(
            f"{_fit(node.node_name, 30):<30} {node.capacity:>5} {node.used:>5}"
            f" {node.available:>9}  {node.status}",
        )
    return "\n".join(lines)


def render_workloads(groups: Sequence[aggregator.WorkloadGroup]) -> str:
    lines = ["GPU Workloads", _rule()]
    if not groups:
        lines.append("  No GPU workloads found")
        return "\n".join(lines)
    lines.append(
        f"{'STATUS':<8} {'WORKLOAD':<36} {'PODS':>4} {'GPUS':>9} {'PRIORITY':<8}  PHASES",
    )
    for group in groups:
        name = _fit(f"{group.namespace}/{group.workload_key}", 36)
        gpus = f"{group.running_gpus}/{group.total_gpus}"
        lines.append(
            f"{group.status:<8} {name:<36} {group.pod_count:>4} {gpus:>9}"
            f" {group.priority_class:<8}  {format_phase_counts(group.phase_counts)}",
        )
    return "\n".join(lines)


def render_namespaces(
    summaries: Mapping[str, aggregator.NamespaceSummary],
    totals: aggregator.ClusterTotals,
) -> str:
    lines = ["GPU Usage by Namespace", _rule()]
    if not summaries:
        lines.append("  No GPU usage data found")
        return "\n".join(lines)
    lines.append(f"{'NAMESPACE':<25} {'RUNNING':>8} {'REQUESTED':>10}  PODS")
    for namespace, summary in summaries.items():
        lines.append(
            f"{_fit(namespace, 25):<25} {summary.running_gpus:>8}"
            f" {summary.total_requested_gpus:>10}"
            f"  {format_phase_counts(summary.phase_counts)}",
        )
    lines.append(_rule())
    lines.append(
        f"{'TOTAL':<25} {totals.total_running_gpus:>8} {totals.total_requested_gpus:>10}",
    )
    return "\n".join(lines)


def render_pods(claims: Sequence[GpuClaim]) -> str:
    """Render one line per GPU pod, ordered by namespace then pod name.

    REQ is the GPU count the pod is charged with, LIM the declared limits.
    CLASS is the pod's PriorityClass name, next to the derived priority.
    """
    lines = ["GPU Pods", _rule()]
    if not claims:
        lines.append("  No GPU pods found")
        return "\n".join(lines)
    lines.append(
        f"{'NAMESPACE':<20} {'POD':<30} {'OWNER':<20} {'REQ':>3} {'LIM':>3}"
        f" {'PRIORITY':<8} {'CLASS':<20} {'PHASE':<9} NODE",
    )
    for claim in sorted(claims, key=lambda c: (c.namespace, c.pod_name)):
        lines.append(
            f"{_fit(claim.namespace, 20):<20} {_fit(claim.pod_name, 30):<30}"
            f" {_fit(claim.owner or '-', 20):<20}"
            f" {claim.gpu_requested:>3} {claim.gpu_limit:>3}"
            f" {claim.priority_class:<8} {_fit(claim.priority_class_name or '-', 20):<20}"
            f" {claim.phase.value:<9} {claim.node_name or '-'}",
        )
    return "\n".join(lines)


def render_quotas(quotas: Sequence[GpuQuota]) -> str:
    """Render GPU resource quotas, ordered by namespace, quota and resource."""
    lines = ["GPU Quotas", _rule()]
    if not quotas:
        lines.append("  No GPU resource quotas found")
        return "\n".join(lines)
    lines.append(
        f"{'NAMESPACE':<20} {'QUOTA':<20} {'RESOURCE':<22} {'HARD':>5} {'USED':>5} REMAINING",
    )
    for quota in sorted(quotas, key=lambda q: (q.namespace, q.name, q.resource)):
        lines.append(
            f"{_fit(quota.namespace, 20):<20} {_fit(quota.name, 20):<20}"
            f" {_fit(quota.resource, 22):<22} {quota.hard:>5} {quota.used:>5}"
            f" {quota.remaining}",
        )
    return "\n".join(lines)


def generate_report(
    claims: Iterable[GpuClaim],
    capacity: Iterable[NodeCapacity],
    *,
    quotas: Iterable[GpuQuota] = (),
    bar_width: int = DEFAULT_BAR_WIDTH,
    title: str | None = None,
    include_pods: bool = False,
) -> RenderedReport:
    """Aggregate claims and capacity and render every report section.

    Args:
        claims: GPU claims in collection order.
        capacity: Per-node GPU capacity.
        quotas: GPU resource quotas; the quota table is always rendered.
        bar_width: Width of the utilization bar in characters.
        title: Shown in the header, typically the API server or context.
        include_pods: Also render the per-pod table.

    Returns:
        RenderedReport with each section as plain text.
    """
    claims = aggregator.dedupe_claims(claims)
    capacity = list(capacity)

    summaries, totals = aggregator.aggregate(claims, capacity)
    overview, bar = render_overview(totals, bar_width)

    heading = "GPU USAGE REPORT" + (f" - {title}" if title else "")
    return RenderedReport(
        header=f"{_rule('=')}\n{heading}\n{_rule('=')}",
        overview=overview,
        bar=bar,
        nodes=render_nodes(aggregator.summarize_nodes(claims, capacity)),
        workloads=render_workloads(aggregator.group_workloads(claims)),
        namespaces=render_namespaces(summaries, totals),
        quotas=render_quotas(list(quotas)),
        pods=render_pods(claims) if include_pods else None,
    )
