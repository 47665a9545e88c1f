"""Tests for KubeApiClient request handling against a mocked API server."""

import httpx
import pytest

from gpu_usage_report.kubeapi import client

API_SERVER = "https://k8s.example:6443"


def _pod(name: str, namespace: str = "default") -> dict:
    return {
        "metadata": {"name": name, "namespace": namespace},
        "spec": {"containers": [{"name": "main"}]},
        "status": {"phase": "Running"},
    }


def _pod_list(items: list[dict], continue_token: str | None = None) -> dict:
    metadata = {"resourceVersion": "42"}
    if continue_token:
        metadata["continue"] = continue_token
    return {"kind": "PodList", "apiVersion": "v1", "metadata": metadata, "items": items}


def _kube_client(handler) -> client.KubeApiClient:
    """KubeApiClient whose thread-local httpx client answers through handler."""
    kube = client.KubeApiClient(base_url=API_SERVER)
    kube._local.client = httpx.Client(
        base_url=API_SERVER,
        transport=httpx.MockTransport(handler),
    )
    return kube


def test_list_pods_follows_continue_tokens():
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if "continue" not in request.url.params:
            return httpx.Response(200, json=_pod_list([_pod("a"), _pod("b")], "page-2"))
        return httpx.Response(200, json=_pod_list([_pod("c")]))

    with _kube_client(handler) as kube:
        pods = kube.list_pods()

    assert [p.metadata.name for p in pods] == ["a", "b", "c"]
    assert [r.url.path for r in requests] == ["/api/v1/pods", "/api/v1/pods"]
    assert requests[0].url.params["limit"] == str(client.DEFAULT_PAGE_LIMIT)
    assert requests[1].url.params["continue"] == "page-2"


def test_list_pods_in_namespace():
    paths = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        return httpx.Response(200, json=_pod_list([_pod("a", "llm-d")]))

    pods = _kube_client(handler).list_pods(namespace="llm-d")

    assert paths == ["/api/v1/namespaces/llm-d/pods"]
    assert pods[0].metadata.namespace == "llm-d"


def test_list_nodes_parses_capacity():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/v1/nodes"
        return httpx.Response(
            200,
            json={
                "kind": "NodeList",
                "metadata": {},
                "items": [
                    {
                        "metadata": {"name": "gpu-1", "labels": {"gpu": "h100"}},
                        "status": {"capacity": {"nvidia.com/gpu": "8", "cpu": "96"}},
                    },
                ],
            },
        )

    nodes = _kube_client(handler).list_nodes()

    assert nodes[0].metadata.name == "gpu-1"
    assert nodes[0].status.capacity["nvidia.com/gpu"] == "8"


def test_list_resource_quotas_paths():
    paths = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        return httpx.Response(
            200,
            json={
                "kind": "ResourceQuotaList",
                "metadata": {},
                "items": [
                    {
                        "metadata": {"name": "gpu-quota", "namespace": "llm-d"},
                        "spec": {"hard": {"requests.nvidia.com/gpu": "8"}},
                        "status": {"used": {"requests.nvidia.com/gpu": "2"}},
                    },
                ],
            },
        )

    kube = _kube_client(handler)
    everywhere = kube.list_resource_quotas()
    kube.list_resource_quotas(namespace="llm-d")

    assert paths == ["/api/v1/resourcequotas", "/api/v1/namespaces/llm-d/resourcequotas"]
    assert everywhere[0].metadata.name == "gpu-quota"
    assert everywhere[0].spec.hard == {"requests.nvidia.com/gpu": "8"}
    assert everywhere[0].status.used == {"requests.nvidia.com/gpu": "2"}


def test_empty_item_list():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"kind": "PodList", "metadata": {}, "items": None})

    assert _kube_client(handler).list_pods() == []


def test_failure_status_body_raises_runtime_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "kind": "Status",
                "status": "Failure",
                "message": "pods is forbidden",
                "reason": "Forbidden",
            },
        )

    with pytest.raises(RuntimeError, match="pods is forbidden"):
        _kube_client(handler).list_pods()


def test_http_error_propagates():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(403, json={"kind": "Status", "status": "Failure"})

    with pytest.raises(httpx.HTTPStatusError):
        _kube_client(handler).list_nodes()


def test_close_closes_thread_local_client():
    kube = _kube_client(lambda request: httpx.Response(200, json={"items": []}))
    http_client = kube.client

    kube.close()

    assert http_client.is_closed


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


def test_empty_base_url_rejected():
    with pytest.raises(ValueError, match="base_url"):
        client.KubeApiClient(base_url="")


def test_non_positive_timeout_rejected():
    with pytest.raises(ValueError, match="timeout"):
        client.KubeApiClient(base_url=API_SERVER, timeout=0)


def test_missing_token_file_rejected(tmp_path):
    with pytest.raises(FileNotFoundError, match="Token file"):
        client.KubeApiClient(base_url=API_SERVER, token_file=tmp_path / "token")


def test_missing_ca_file_rejected(tmp_path):
    with pytest.raises(FileNotFoundError, match="CA file"):
        client.KubeApiClient(base_url=API_SERVER, ca_file=tmp_path / "ca.crt")


def test_trailing_slash_stripped():
    assert client.KubeApiClient(base_url=f"{API_SERVER}/").base_url == API_SERVER


def test_missing_client_certificate_rejected(tmp_path):
    key = tmp_path / "client.key"
    key.write_text("key")

    with pytest.raises(FileNotFoundError, match="Client certificate"):
        client.KubeApiClient(
            base_url=API_SERVER,
            client_cert=(str(tmp_path / "client.crt"), str(key)),
        )


def test_inline_token_sets_bearer_header():
    kube = client.KubeApiClient(base_url=API_SERVER, token="static-bearer-token")

    assert kube.client.headers["Authorization"] == "Bearer static-bearer-token"


def test_token_file_wins_over_inline_token(tmp_path):
    token_file = tmp_path / "token"
    token_file.write_text("from-file\n")

    kube = client.KubeApiClient(base_url=API_SERVER, token_file=token_file, token="inline")

    assert kube.client.headers["Authorization"] == "Bearer from-file"


def test_display_name_prefers_name_over_url():
    assert client.KubeApiClient(base_url=API_SERVER).display_name == API_SERVER
    assert client.KubeApiClient(base_url=API_SERVER, name="prod").display_name == "prod"
