"""Raw API response types for the Kubernetes core/v1 API.

Pydantic models covering the subset of Pod, Node and ResourceQuota objects
the reporter reads. Field names follow Python conventions; the camelCase
keys used by the API server are accepted through aliases. Unknown keys are
ignored.
"""

from pydantic import BaseModel, ConfigDict, Field

# Resource quantities are strings on the wire ("1", "500m") but some
# clients and fixtures hand back plain integers.
Quantity = str | int


class _KubeModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class RawOwnerReference(_KubeModel):
    """Owner reference of an object (ReplicaSet, Job, StatefulSet, ...)."""

    kind: str = ""
    name: str = ""


class RawObjectMeta(_KubeModel):
    """Object metadata shared by pods, nodes and resource quotas."""

    name: str = ""
    namespace: str = ""
    labels: dict[str, str] | None = None
    owner_references: list[RawOwnerReference] | None = Field(
        None,
        alias="ownerReferences",
    )
    creation_timestamp: str | None = Field(None, alias="creationTimestamp")


class RawResourceRequirements(_KubeModel):
    """Container resource requests and limits."""

    requests: dict[str, Quantity] | None = None
    limits: dict[str, Quantity] | None = None


class RawContainer(_KubeModel):
    """A single container in a pod spec."""

    name: str = ""
    resources: RawResourceRequirements | None = None


class RawPodSpec(_KubeModel):
    """Pod spec fields relevant to GPU accounting."""

    node_name: str | None = Field(None, alias="nodeName")
    priority: int | None = None
    priority_class_name: str | None = Field(None, alias="priorityClassName")
    containers: list[RawContainer] = Field(default_factory=list)


class RawPodStatus(_KubeModel):
    """Pod status; only the lifecycle phase is used."""

    phase: str | None = None


class RawPodData(_KubeModel):
    """Raw pod object from ``GET /api/v1/pods``."""

    metadata: RawObjectMeta = Field(default_factory=RawObjectMeta)
    spec: RawPodSpec = Field(default_factory=RawPodSpec)
    status: RawPodStatus = Field(default_factory=RawPodStatus)


class RawNodeStatus(_KubeModel):
    """Node status; advertised and allocatable extended resources."""

    capacity: dict[str, Quantity] | None = None
    allocatable: dict[str, Quantity] | None = None


class RawNodeData(_KubeModel):
    """Raw node object from ``GET /api/v1/nodes``."""

    metadata: RawObjectMeta = Field(default_factory=RawObjectMeta)
    status: RawNodeStatus = Field(default_factory=RawNodeStatus)


class RawResourceQuotaSpec(_KubeModel):
    """Quota limits as declared by the namespace owner."""

    hard: dict[str, Quantity] | None = None


class RawResourceQuotaStatus(_KubeModel):
    """Enforced limits and current consumption reported by the quota controller."""

    hard: dict[str, Quantity] | None = None
    used: dict[str, Quantity] | None = None


class RawResourceQuota(_KubeModel):
    """Raw resource quota object from ``GET /api/v1/resourcequotas``."""

    metadata: RawObjectMeta = Field(default_factory=RawObjectMeta)
    spec: RawResourceQuotaSpec = Field(default_factory=RawResourceQuotaSpec)
    status: RawResourceQuotaStatus = Field(default_factory=RawResourceQuotaStatus)
