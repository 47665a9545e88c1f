"""GPU claim collector for Kubernetes pods.

Fetches pods from the Kubernetes API and resolves each pod that declares a
GPU resource into a GpuClaim. Request/limit fallback, quantity parsing and
phase normalization all happen here so that the aggregator only ever sees
structured, already-normalized records.
"""

from collections.abc import Iterable, Mapping

import structlog

from .. import kubeapi
from ..aggregator import GpuClaim, Phase

logger = structlog.get_logger(__name__)

DEFAULT_GPU_RESOURCES = ("nvidia.com/gpu", "amd.com/gpu")


def parse_gpu_quantity(value: str | int | None) -> int | None:
    """Parse a GPU resource quantity into a whole device count.

    Args:
        value: Quantity as found in the pod spec.

    Returns:
        Non-negative integer count, or None when the value is absent or not
        a plain integer (GPUs are not divisible, so "500m" is rejected).
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    text = value.strip()
    # isdigit() alone also accepts superscripts and other non-ASCII digits
    if not (text.isascii() and text.isdigit()):
        return None
    return int(text)


def resolve_container_gpus(
    requests: Mapping[str, str | int] | None,
    limits: Mapping[str, str | int] | None,
    resource_names: Iterable[str] = DEFAULT_GPU_RESOURCES,
) -> tuple[bool, int]:
    """Resolve a container's GPU count from its requests and limits.

    For each GPU resource the request wins when declared; otherwise the
    limit is used (extended resources may be declared as limit only).
    A declared but unparseable quantity counts as zero.

    Args:
        requests: Container resource requests.
        limits: Container resource limits.
        resource_names: GPU resource names to consider.

    Returns:
        Tuple of (declared, count) where declared tells whether any GPU
        resource appeared at all.
    """
    requests = requests or {}
    limits = limits or {}
    declared = False
    count = 0
    for resource in resource_names:
        if resource in requests:
            raw = requests[resource]
        elif resource in limits:
            raw = limits[resource]
        else:
            continue
        declared = True
        parsed = parse_gpu_quantity(raw)
        if parsed is None:
            logger.debug("Ignoring unparseable GPU quantity", resource=resource, value=raw)
            continue
        count += parsed
    return declared, count


def _declared_limit(
    limits: Mapping[str, str | int] | None,
    resource_names: Iterable[str],
) -> int:
    limits = limits or {}
    return sum(parse_gpu_quantity(limits.get(resource)) or 0 for resource in resource_names)


def _owner_of(raw: kubeapi.types.RawPodData) -> str:
    """Who runs the pod: its ``app`` label, else the first owner's name."""
    app = (raw.metadata.labels or {}).get("app")
    if app:
        return app
    owners = raw.metadata.owner_references or []
    if owners and owners[0].name:
        return owners[0].name
    return "direct"


def _transform_pod(
    raw: kubeapi.types.RawPodData,
    resource_names: Iterable[str] = DEFAULT_GPU_RESOURCES,
) -> GpuClaim | None:
    """Transform a raw pod into a GpuClaim.

    Args:
        raw: Raw pod data from the Kubernetes API.
        resource_names: GPU resource names to consider.

    Returns:
        GpuClaim summed over all containers, or None when no container
        declares a GPU resource.
    """
    resource_names = tuple(resource_names)
    declared = False
    gpus = 0
    limit = 0
    for container in raw.spec.containers:
        resources = container.resources or kubeapi.types.RawResourceRequirements()
        container_declared, container_gpus = resolve_container_gpus(
            resources.requests,
            resources.limits,
            resource_names,
        )
        declared = declared or container_declared
        gpus += container_gpus
        limit += _declared_limit(resources.limits, resource_names)

    if not declared:
        return None

    return GpuClaim(
        namespace=raw.metadata.namespace,
        pod_name=raw.metadata.name,
        gpu_requested=gpus,
        phase=Phase.resolve(raw.status.phase),
        node_name=raw.spec.node_name or None,
        priority=raw.spec.priority,
        priority_class_name=raw.spec.priority_class_name,
        owner=_owner_of(raw),
        gpu_limit=limit,
    )


def fetch(
    client: kubeapi.KubeApiClient,
    resource_names: Iterable[str] = DEFAULT_GPU_RESOURCES,
    namespace: str | None = None,
) -> list[GpuClaim]:
    """Fetch GPU claims from the Kubernetes API.

    Args:
        client: API client to use for fetching.
        resource_names: GPU resource names to consider.
        namespace: Restrict collection to one namespace.

    Returns:
        List of GPU claims in API listing order.
    """
    resource_names = tuple(resource_names)
    raw_pods = client.list_pods(namespace=namespace)
    claims = []
    for pod in raw_pods:
        claim = _transform_pod(pod, resource_names)
        if claim is not None:
            claims.append(claim)
    logger.debug("Collected GPU claims", pods=len(raw_pods), claims=len(claims))
    return claims
