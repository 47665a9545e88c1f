"""GPU resource quota collector.

Fetches resource quotas from the Kubernetes API and reports, per quota,
the hard GPU limit next to what is already consumed. Quotas on extended
resources are written either as the bare resource name or with a
``requests.``/``limits.`` prefix; every spelling is reported separately.
"""

from collections.abc import Iterable

import httpx
import structlog

from .. import kubeapi
from ..aggregator import GpuQuota
from .claims import DEFAULT_GPU_RESOURCES, parse_gpu_quantity

logger = structlog.get_logger(__name__)

QUOTA_PREFIXES = ("", "requests.", "limits.")


def quota_keys(resource_names: Iterable[str]) -> tuple[str, ...]:
    """Quota keys that limit the given GPU resources."""
    return tuple(
        f"{prefix}{resource}" for resource in resource_names for prefix in QUOTA_PREFIXES
    )


def _transform_quota(
    raw: kubeapi.types.RawResourceQuota,
    resource_names: Iterable[str] = DEFAULT_GPU_RESOURCES,
) -> list[GpuQuota]:
    """Transform a raw resource quota into one GpuQuota per GPU key.

    Args:
        raw: Raw resource quota from the Kubernetes API.
        resource_names: GPU resource names to consider.

    Returns:
        GPU quotas in key order; empty when the quota limits no GPU
        resource.
    """
    # Declared limits first, then the enforced ones
    hard_limits = raw.spec.hard or raw.status.hard or {}
    used = raw.status.used or {}
    quotas = []
    for key in quota_keys(resource_names):
        if key not in hard_limits:
            continue
        hard = parse_gpu_quantity(hard_limits[key])
        if hard is None:
            logger.warning(
                "Failed to parse GPU quota",
                namespace=raw.metadata.namespace,
                quota=raw.metadata.name,
                resource=key,
                value=hard_limits[key],
            )
            continue
        quotas.append(
            GpuQuota(
                namespace=raw.metadata.namespace,
                name=raw.metadata.name,
                resource=key,
                hard=hard,
                used=parse_gpu_quantity(used.get(key)) or 0,
            ),
        )
    return quotas


def fetch(
    client: kubeapi.KubeApiClient,
    resource_names: Iterable[str] = DEFAULT_GPU_RESOURCES,
    namespace: str | None = None,
) -> list[GpuQuota]:
    """Fetch GPU quotas from the Kubernetes API.

    Listing quotas needs its own RBAC grant. When the API server refuses it
    the report goes on without quotas instead of failing.

    Args:
        client: API client to use for fetching.
        resource_names: GPU resource names to consider.
        namespace: Restrict collection to one namespace.

    Returns:
        List of GPU quotas in API listing order.
    """
    resource_names = tuple(resource_names)
    try:
        raw_quotas = client.list_resource_quotas(namespace=namespace)
    except httpx.HTTPStatusError as e:
        if e.response.status_code != httpx.codes.FORBIDDEN:
            raise
        logger.warning("Not allowed to list resource quotas, skipping them")
        return []

    quotas = []
    for raw in raw_quotas:
        quotas.extend(_transform_quota(raw, resource_names))
    return quotas
