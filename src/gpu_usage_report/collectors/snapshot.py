"""Cluster GPU snapshot: claims, capacity and quotas collected together.

Pairs the claim and capacity collectors into one inventory and turns it
into Prometheus metrics: cluster totals, per-namespace usage and per-node
usage computed by the aggregator, plus GPU resource quotas.
"""

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from prometheus_client.core import GaugeMetricFamily
from prometheus_client.metrics_core import Metric

from .. import aggregator, kubeapi
from . import capacity, claims, quotas


@dataclass
class ClusterSnapshot:
    """GPU claims, node capacity and GPU quotas gathered in one collection pass."""

    claims: list[aggregator.GpuClaim] = field(default_factory=list)
    capacity: list[aggregator.NodeCapacity] = field(default_factory=list)
    quotas: list[aggregator.GpuQuota] = field(default_factory=list)


def fetch(
    client: kubeapi.KubeApiClient,
    resource_names: Iterable[str] = claims.DEFAULT_GPU_RESOURCES,
    namespace: str | None = None,
) -> ClusterSnapshot:
    """Fetch claims, node capacity and GPU quotas from the Kubernetes API.

    Args:
        client: API client to use for fetching.
        resource_names: GPU resource names to consider.
        namespace: Restrict claim and quota collection to one namespace.
            Capacity is always cluster-wide.

    Returns:
        ClusterSnapshot with claims in listing order.
    """
    resource_names = tuple(resource_names)
    return ClusterSnapshot(
        claims=claims.fetch(client, resource_names, namespace=namespace),
        capacity=capacity.fetch(client, resource_names),
        quotas=quotas.fetch(client, resource_names, namespace=namespace),
    )


def generate_metrics(snapshot: ClusterSnapshot) -> Iterator[Metric]:
    """Generate Prometheus metrics from a cluster snapshot.

    Args:
        snapshot: Claims, capacity and quotas to report.

    Yields:
        Prometheus Metric objects.
    """
    summaries, totals = aggregator.aggregate(snapshot.claims, snapshot.capacity)

    for name, documentation, value in (
        ("k8s_gpu_capacity", "Total advertised gpus", totals.total_capacity_gpus),
        ("k8s_gpu_running", "Gpus held by running pods", totals.total_running_gpus),
        (
            "k8s_gpu_requested",
            "Gpus requested by running, pending and failed pods",
            totals.total_requested_gpus,
        ),
        (
            "k8s_gpu_available",
            "Capacity minus running gpus, negative when over-subscribed",
            totals.available_gpus,
        ),
        (
            "k8s_gpu_utilization_percent",
            "Running gpus as a whole percentage of capacity",
            totals.utilization_pct,
        ),
    ):
        gauge = GaugeMetricFamily(name, documentation)
        gauge.add_metric([], value)
        yield gauge

    namespace_running = GaugeMetricFamily(
        "k8s_gpu_namespace_running",
        "Gpus held by running pods per namespace",
        labels=["namespace"],
    )
    namespace_requested = GaugeMetricFamily(
        "k8s_gpu_namespace_requested",
        "Gpus requested per namespace",
        labels=["namespace"],
    )
    namespace_pods = GaugeMetricFamily(
        "k8s_gpu_namespace_pods",
        "Gpu pods per namespace and phase",
        labels=["namespace", "phase"],
    )
    for namespace, summary in summaries.items():
        namespace_running.add_metric([namespace], summary.running_gpus)
        namespace_requested.add_metric([namespace], summary.total_requested_gpus)
        for phase, count in summary.phase_counts.items():
            namespace_pods.add_metric([namespace, phase.value], count)
    yield namespace_running
    yield namespace_requested
    yield namespace_pods

    node_capacity = GaugeMetricFamily(
        "k8s_gpu_node_capacity",
        "Advertised gpus per node",
        labels=["node"],
    )
    node_used = GaugeMetricFamily(
        "k8s_gpu_node_used",
        "Gpus held by running pods per node",
        labels=["node"],
    )
    for usage in aggregator.summarize_nodes(snapshot.claims, snapshot.capacity):
        node_capacity.add_metric([usage.node_name], usage.capacity)
        node_used.add_metric([usage.node_name], usage.used)
    yield node_capacity
    yield node_used

    quota_labels = ["namespace", "quota", "resource"]
    quota_hard = GaugeMetricFamily(
        "k8s_gpu_quota_hard",
        "Gpu limit of a resource quota",
        labels=quota_labels,
    )
    quota_used = GaugeMetricFamily(
        "k8s_gpu_quota_used",
        "Gpus consumed against a resource quota",
        labels=quota_labels,
    )
    for quota in snapshot.quotas:
        labels = [quota.namespace, quota.name, quota.resource]
        quota_hard.add_metric(labels, quota.hard)
        quota_used.add_metric(labels, quota.used)
    yield quota_hard
    yield quota_used
