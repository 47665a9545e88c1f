"""Resolve API server access from a kubeconfig file.

Lets the reporter run from an operator workstation against the same
context kubectl would use. The kubernetes client library does the parsing,
including exec and auth-provider plugins and inline certificate data; the
resolved server, credentials and TLS files are then handed to
:class:`KubeApiClient`.
"""

from dataclasses import dataclass

import structlog
from kubernetes import client as k8s_client
from kubernetes import config as k8s_config

from .client import DEFAULT_TIMEOUT, KubeApiClient

logger = structlog.get_logger(__name__)

# Raised for missing files, unknown contexts and unusable credentials.
KubeconfigError = k8s_config.ConfigException


@dataclass(frozen=True)
class KubeconfigTarget:
    """API server access resolved from one kubeconfig context."""

    context: str
    server: str
    token: str | None = None
    ca_file: str | None = None
    verify: bool = True
    cert_file: str | None = None
    key_file: str | None = None

    @property
    def client_cert(self) -> tuple[str, str] | None:
        if self.cert_file and self.key_file:
            return self.cert_file, self.key_file
        return None


def load_kubeconfig(
    path: str | None = None,
    context: str | None = None,
) -> KubeconfigTarget:
    """Resolve a kubeconfig context into server, credentials and TLS files.

    Args:
        path: Kubeconfig file; ``$KUBECONFIG`` or ``~/.kube/config`` when
            omitted.
        context: Context name; the file's current context when omitted.

    Raises:
        KubeconfigError: If the file is missing, the context is unknown or
            its credentials cannot be loaded.
    """
    name = context
    if name is None:
        _contexts, active = k8s_config.list_kube_config_contexts(config_file=path)
        name = active["name"]

    configuration = k8s_client.Configuration()
    k8s_config.load_kube_config(
        config_file=path,
        context=name,
        client_configuration=configuration,
        persist_config=False,
    )

    authorization = configuration.api_key.get("authorization")
    token = authorization.removeprefix("Bearer ").strip() if authorization else None
    logger.debug("Loaded kubeconfig context", context=name, server=configuration.host)
    return KubeconfigTarget(
        context=name,
        server=configuration.host,
        token=token or None,
        ca_file=configuration.ssl_ca_cert,
        verify=configuration.verify_ssl,
        cert_file=configuration.cert_file,
        key_file=configuration.key_file,
    )


def client_from_kubeconfig(
    path: str | None = None,
    context: str | None = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> KubeApiClient:
    """Build a KubeApiClient for a kubeconfig context, named after it."""
    target = load_kubeconfig(path, context)
    return KubeApiClient(
        base_url=target.server,
        ca_file=target.ca_file,
        timeout=timeout,
        token=target.token,
        client_cert=target.client_cert,
        verify=target.verify,
        name=target.context,
    )
