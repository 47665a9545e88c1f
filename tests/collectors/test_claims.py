"""Tests for the claims collector module."""

from unittest.mock import MagicMock

import pytest

from gpu_usage_report.aggregator import Phase
from gpu_usage_report.collectors import claims
from gpu_usage_report.kubeapi import client, types


def _pod(
    name: str,
    namespace: str = "default",
    containers: list[dict] | None = None,
    phase: str | None = "Running",
    **spec,
) -> types.RawPodData:
    return types.RawPodData.model_validate(
        {
            "metadata": {"name": name, "namespace": namespace},
            "spec": {"containers": containers or [], **spec},
            "status": {"phase": phase},
        },
    )


def _container(requests: dict | None = None, limits: dict | None = None) -> dict:
    resources = {}
    if requests is not None:
        resources["requests"] = requests
    if limits is not None:
        resources["limits"] = limits
    return {"name": "main", "resources": resources}


@pytest.fixture
def raw_gpu_pod() -> types.RawPodData:
    """A scheduled vLLM decode pod holding two NVIDIA GPUs."""
    return types.RawPodData.model_validate(
        {
            "metadata": {
                "name": "ms-decode-7f8b9c-abcde",
                "namespace": "llm-d",
                "ownerReferences": [{"kind": "ReplicaSet", "name": "ms-decode-7f8b9c"}],
            },
            "spec": {
                "nodeName": "gpu-node-1",
                "priority": 1000,
                "priorityClassName": "inference",
                "containers": [
                    _container({"nvidia.com/gpu": "2"}, {"nvidia.com/gpu": "2"}),
                    _container({"cpu": "1"}),
                ],
            },
            "status": {"phase": "Running"},
        },
    )


# ---------------------------------------------------------------------------
# parse_gpu_quantity
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("2", 2),
        (" 4 ", 4),
        (8, 8),
        ("0", 0),
        ("500m", None),
        ("1.5", None),
        ("", None),
        ("-1", None),
        ("²", None),
        ("٣", None),
        (-1, None),
        (None, None),
    ],
)
def test_parse_gpu_quantity(value, expected):
    """Only whole, non-negative device counts are accepted."""
    assert claims.parse_gpu_quantity(value) == expected


# ---------------------------------------------------------------------------
# resolve_container_gpus
# ---------------------------------------------------------------------------


def test_resolve_request_preferred_over_limit():
    declared, count = claims.resolve_container_gpus(
        {"nvidia.com/gpu": "1"},
        {"nvidia.com/gpu": "4"},
    )
    assert declared
    assert count == 1


def test_resolve_limit_only_is_a_claim():
    """Extended resources declared only as a limit still count."""
    declared, count = claims.resolve_container_gpus(None, {"nvidia.com/gpu": "3"})
    assert declared
    assert count == 3


def test_resolve_no_gpu_resources():
    declared, count = claims.resolve_container_gpus({"cpu": "2"}, {"memory": "1Gi"})
    assert not declared
    assert count == 0


def test_resolve_unparseable_quantity_is_zero_claim():
    declared, count = claims.resolve_container_gpus({"nvidia.com/gpu": "lots"}, None)
    assert declared
    assert count == 0


def test_resolve_sums_vendors():
    declared, count = claims.resolve_container_gpus(
        {"nvidia.com/gpu": "1", "amd.com/gpu": "2"},
        None,
    )
    assert declared
    assert count == 3


def test_resolve_respects_resource_names():
    declared, count = claims.resolve_container_gpus(
        {"nvidia.com/gpu": "1", "habana.ai/gaudi": "8"},
        None,
        resource_names=("habana.ai/gaudi",),
    )
    assert declared
    assert count == 8


# ---------------------------------------------------------------------------
# _transform_pod
# ---------------------------------------------------------------------------


def test_transform_pod_fields(raw_gpu_pod: types.RawPodData):
    claim = claims._transform_pod(raw_gpu_pod)

    assert claim is not None
    assert claim.namespace == "llm-d"
    assert claim.pod_name == "ms-decode-7f8b9c-abcde"
    assert claim.workload_key == "ms-decode"
    assert claim.gpu_requested == 2
    assert claim.phase is Phase.RUNNING
    assert claim.node_name == "gpu-node-1"
    assert claim.priority == 1000
    assert claim.priority_class_name == "inference"
    assert claim.owner == "ms-decode-7f8b9c"
    assert claim.gpu_limit == 2


def test_transform_pod_without_gpus_is_skipped():
    pod = _pod("web-0", containers=[_container({"cpu": "1"})])
    assert claims._transform_pod(pod) is None


def test_transform_pod_sums_containers():
    pod = _pod(
        "multi-0",
        containers=[
            _container({"nvidia.com/gpu": "1"}),
            _container(None, {"nvidia.com/gpu": "2"}),
        ],
    )
    claim = claims._transform_pod(pod)
    assert claim is not None
    assert claim.gpu_requested == 3


def test_transform_pod_unknown_phase():
    pod = _pod("odd-0", containers=[_container({"nvidia.com/gpu": "1"})], phase="Weird")
    claim = claims._transform_pod(pod)
    assert claim is not None
    assert claim.phase is Phase.UNKNOWN


def test_transform_pod_missing_phase():
    pod = _pod("new-0", containers=[_container({"nvidia.com/gpu": "1"})], phase=None)
    claim = claims._transform_pod(pod)
    assert claim is not None
    assert claim.phase is Phase.UNKNOWN


def test_transform_pod_unscheduled_has_no_node():
    pod = _pod("pending-0", containers=[_container({"nvidia.com/gpu": "1"})], phase="Pending")
    claim = claims._transform_pod(pod)
    assert claim is not None
    assert claim.node_name is None
    assert claim.owner == "direct"


def test_transform_pod_app_label_names_owner(raw_gpu_pod: types.RawPodData):
    raw_gpu_pod.metadata.labels = {"app": "vllm-decode"}
    claim = claims._transform_pod(raw_gpu_pod)
    assert claim is not None
    assert claim.owner == "vllm-decode"


def test_transform_pod_limit_only_sets_request_and_limit():
    pod = _pod("train-0", containers=[_container(None, {"amd.com/gpu": "4"})])
    claim = claims._transform_pod(pod)
    assert claim is not None
    assert claim.gpu_requested == 4
    assert claim.gpu_limit == 4


def test_transform_pod_request_without_limit_has_zero_limit():
    pod = _pod("burst-0", containers=[_container({"nvidia.com/gpu": "1"})])
    claim = claims._transform_pod(pod)
    assert claim is not None
    assert claim.gpu_limit == 0


def test_transform_pod_superscript_limit_is_zero_claim():
    pod = _pod("odd-1", containers=[_container(None, {"nvidia.com/gpu": "²"})])
    claim = claims._transform_pod(pod)
    assert claim is not None
    assert claim.gpu_requested == 0
    assert claim.gpu_limit == 0


# ---------------------------------------------------------------------------
# fetch
# ---------------------------------------------------------------------------


def test_fetch_keeps_gpu_pods_in_listing_order(raw_gpu_pod: types.RawPodData):
    mock_client = MagicMock(spec=client.KubeApiClient)
    mock_client.list_pods.return_value = [
        _pod("b-gpu", containers=[_container({"amd.com/gpu": "1"})]),
        _pod("web", containers=[_container({"cpu": "1"})]),
        raw_gpu_pod,
    ]

    result = claims.fetch(mock_client)

    assert [c.pod_name for c in result] == ["b-gpu", "ms-decode-7f8b9c-abcde"]
    mock_client.list_pods.assert_called_once_with(namespace=None)


def test_fetch_passes_namespace():
    mock_client = MagicMock(spec=client.KubeApiClient)
    mock_client.list_pods.return_value = []

    assert claims.fetch(mock_client, namespace="llm-d") == []
    mock_client.list_pods.assert_called_once_with(namespace="llm-d")
