"""Kubernetes API client package.

Provides a lightweight HTTP client for the Kubernetes core/v1 API that
returns raw, validated API response types with minimal processing. GPU
accounting is handled by the collector modules.

Exports:
    KubeApiClient: HTTP client with authentication and error handling.
    client_from_kubeconfig: Build a client for a kubeconfig context.
    KubeconfigError: Raised when a kubeconfig cannot be used.
    types: Module containing Pydantic models for API responses.
    DEFAULT_TIMEOUT: Default HTTP request timeout.
"""

from . import types
from .client import (
    DEFAULT_TIMEOUT,
    ExpiredTokenError,
    KubeApiClient,
)
from .kubeconfig import KubeconfigError, client_from_kubeconfig

__all__ = [
    "DEFAULT_TIMEOUT",
    "ExpiredTokenError",
    "KubeApiClient",
    "KubeconfigError",
    "client_from_kubeconfig",
    "types",
]
