"""Node GPU capacity collector.

Fetches nodes from the Kubernetes API and reports the advertised GPU
capacity of every node exposing at least one GPU through a supported device
plugin resource. Nodes without GPUs are omitted rather than reported as zero.
"""

from collections.abc import Iterable

import structlog

from .. import kubeapi
from ..aggregator import NodeCapacity
from .claims import DEFAULT_GPU_RESOURCES, parse_gpu_quantity

logger = structlog.get_logger(__name__)


def _transform_node(
    raw: kubeapi.types.RawNodeData,
    resource_names: Iterable[str] = DEFAULT_GPU_RESOURCES,
) -> NodeCapacity | None:
    """Transform a raw node into a NodeCapacity.

    Args:
        raw: Raw node data from the Kubernetes API.
        resource_names: GPU resource names to consider.

    Returns:
        NodeCapacity summed across vendors, or None for nodes without GPUs.
    """
    capacity = raw.status.capacity or {}
    total = 0
    vendors = []
    for resource in resource_names:
        if resource not in capacity:
            continue
        count = parse_gpu_quantity(capacity[resource])
        if count is None:
            logger.warning(
                "Failed to parse GPU capacity",
                node=raw.metadata.name,
                resource=resource,
                value=capacity[resource],
            )
            continue
        if count > 0:
            total += count
            vendors.append(resource)

    if total == 0:
        return None
    return NodeCapacity(
        node_name=raw.metadata.name,
        gpu_count=total,
        vendors=tuple(vendors),
    )


def fetch(
    client: kubeapi.KubeApiClient,
    resource_names: Iterable[str] = DEFAULT_GPU_RESOURCES,
) -> list[NodeCapacity]:
    """Fetch per-node GPU capacity from the Kubernetes API.

    Args:
        client: API client to use for fetching.
        resource_names: GPU resource names to consider.

    Returns:
        List of node capacities for GPU nodes only.
    """
    resource_names = tuple(resource_names)
    nodes = []
    for raw in client.list_nodes():
        node = _transform_node(raw, resource_names)
        if node is not None:
            nodes.append(node)
    return nodes
