"""Kubernetes API client.

Provides HTTP client with bearer-token authentication, thread safety,
and automatic response validation using Pydantic models.
"""

import base64
import json
import ssl
import threading
import time
from pathlib import Path
from typing import Any

import httpx
import structlog

from .types import RawNodeData, RawPodData, RawResourceQuota

logger = structlog.get_logger(__name__)

DEFAULT_TIMEOUT = 30.0

# Large clusters return pods in pages; the API server caps the page size anyway.
DEFAULT_PAGE_LIMIT = 500


class ExpiredTokenError(Exception):
    """Raised when the service account token has expired."""


def validate_jwt_not_expired(token: str) -> None:
    """Check that a JWT token has not expired.

    Decodes the JWT payload without verifying the signature and checks
    the ``exp`` claim against the current time. Raises
    :class:`ExpiredTokenError` if the token is already past its
    expiration. If the token is not a valid JWT or has no ``exp`` claim,
    a warning is logged and execution continues.

    Args:
        token: The raw JWT string (header.payload.signature).

    Raises:
        ExpiredTokenError: If the token's ``exp`` claim is in the past.
    """
    parts = token.split(".")
    if len(parts) != 3:  # noqa: PLR2004
        logger.warning("Token does not appear to be a JWT, skipping expiry check")
        return

    try:
        # JWT base64url encoding omits padding; restore it
        payload_b64 = parts[1]
        padding = 4 - len(payload_b64) % 4
        if padding != 4:  # noqa: PLR2004
            payload_b64 += "=" * padding

        payload = json.loads(base64.urlsafe_b64decode(payload_b64))
    except (ValueError, json.JSONDecodeError):
        logger.warning("Failed to decode JWT payload, skipping expiry check")
        return

    exp = payload.get("exp")
    if exp is None:
        logger.warning("JWT has no 'exp' claim, skipping expiry check")
        return

    now = time.time()
    if now >= exp:
        msg = f"Service account token has expired (exp={exp}, now={int(now)})"
        raise ExpiredTokenError(msg)

    logger.info("JWT expiry validated", expires_in_seconds=int(exp - now))


class KubeApiClient:
    """HTTP client for the Kubernetes core/v1 API.

    Lightweight client that handles authentication, makes HTTP requests,
    validates responses, and returns Pydantic-validated data objects.
    GPU accounting is delegated to the collector modules.

    Thread-safe through thread-local storage of httpx.Client instances.
    Can be used as a context manager for automatic cleanup.
    """

    def __init__(  # noqa: PLR0913
        self,
        base_url: str,
        token_file: str | Path | None = None,
        ca_file: str | Path | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        *,
        token: str | None = None,
        client_cert: tuple[str, str] | None = None,
        verify: bool = True,
        name: str | None = None,
    ):
        """Initialize the API client.

        Args:
            base_url: API server URL (e.g., "https://10.0.0.1:6443").
            token_file: Path to file containing a bearer token.
            ca_file: CA bundle used to verify the API server certificate.
                The system trust store is used when omitted.
            timeout: Request timeout in seconds (default: 30.0).
            token: Bearer token, used when no token_file is given.
            client_cert: (certificate, key) file paths for client TLS auth.
            verify: Verify the API server certificate.
            name: Human readable cluster name, e.g. the kubeconfig context.

        Raises:
            ValueError: If base_url is empty or timeout is not positive.
            FileNotFoundError: If token_file, ca_file or a client_cert file
                is specified but doesn't exist.
        """
        if not base_url:
            msg = "base_url cannot be empty"
            raise ValueError(msg)
        if timeout <= 0:
            msg = "timeout must be positive"
            raise ValueError(msg)

        self.base_url = base_url.rstrip("/")
        self.name = name
        self._timeout = timeout

        self._headers = {"Accept": "application/json"}

        if token_file:
            token_path = Path(token_file)
            if not token_path.exists():
                msg = f"Token file not found: {token_file}"
                raise FileNotFoundError(msg)
            token = token_path.read_text().strip()
        if token:
            validate_jwt_not_expired(token)
            self._headers["Authorization"] = f"Bearer {token}"

        self._ca_file: str | None = None
        if ca_file:
            ca_path = Path(ca_file)
            if not ca_path.exists():
                msg = f"CA file not found: {ca_file}"
                raise FileNotFoundError(msg)
            self._ca_file = str(ca_path)

        if client_cert:
            for path in client_cert:
                if not Path(path).exists():
                    msg = f"Client certificate file not found: {path}"
                    raise FileNotFoundError(msg)
        self._client_cert = client_cert
        self._verify = verify

        # Use thread-local storage for httpx.Client (thread safety)
        self._local = threading.local()

    @property
    def display_name(self) -> str:
        """Cluster name for report titles: the context name or the URL."""
        return self.name or self.base_url

    def _tls_verify(self) -> ssl.SSLContext | bool:
        if self._ca_file is None and self._client_cert is None:
            return self._verify
        context = ssl.create_default_context(cafile=self._ca_file)
        if not self._verify:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        if self._client_cert:
            context.load_cert_chain(*self._client_cert)
        return context

    @property
    def client(self) -> httpx.Client:
        """Get or create thread-local httpx client.

        Returns:
            Thread-local httpx.Client instance.
        """
        if not hasattr(self._local, "client") or self._local.client.is_closed:
            self._local.client = httpx.Client(
                base_url=self.base_url,
                headers=self._headers,
                timeout=self._timeout,
                verify=self._tls_verify(),
            )
        return self._local.client

    def __enter__(self):
        """Enter context manager."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Exit context manager and cleanup resources."""
        self.close()

    def close(self):
        """Close the thread-local HTTP client if open."""
        if hasattr(self._local, "client") and not self._local.client.is_closed:
            self._local.client.close()

    def _make_request(
        self,
        endpoint: str,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Make HTTP request to the Kubernetes API.

        Args:
            endpoint: API endpoint path (e.g., "/api/v1/nodes").
            params: Optional query parameters.

        Returns:
            Raw JSON response as dictionary.

        Raises:
            httpx.HTTPError: If HTTP request fails.
            RuntimeError: If the API server answers with a failure Status.
        """
        start_time = time.time()
        params = params or {}

        try:
            logger.debug(
                "Making API request",
                method="GET",
                endpoint=endpoint,
                params=params,
            )
            response = self.client.get(endpoint, params=params)
            response.raise_for_status()
            duration = time.time() - start_time
            logger.debug("API request completed", duration_seconds=round(duration, 3))

            data = response.json()

            if data.get("kind") == "Status" and data.get("status") == "Failure":
                error_msg = data.get("message") or data.get("reason") or str(data)
                logger.error("API error response", error_message=error_msg)
                msg = f"API returned failure status: {error_msg}"
                raise RuntimeError(msg)
            return data  # noqa: TRY300

        except httpx.HTTPError:
            duration = time.time() - start_time
            logger.exception(
                "API request failed",
                duration_seconds=round(duration, 3),
            )
            raise

    def _list_items(
        self,
        endpoint: str,
        params: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Fetch every item of a list endpoint, following ``continue`` tokens."""
        query: dict[str, Any] = {"limit": DEFAULT_PAGE_LIMIT, **(params or {})}
        items: list[dict[str, Any]] = []
        while True:
            data = self._make_request(endpoint=endpoint, params=query)
            items.extend(data.get("items") or [])
            token = (data.get("metadata") or {}).get("continue")
            if not token:
                return items
            query = {**query, "continue": token}

    def list_pods(self, namespace: str | None = None) -> list[RawPodData]:
        """Fetch pods from the Kubernetes API.

        Args:
            namespace: Restrict the listing to one namespace; all
                namespaces when omitted.

        Returns:
            List of validated RawPodData objects.

        Raises:
            httpx.HTTPError: If HTTP request fails.
            RuntimeError: If the API returns a failure status.
        """
        endpoint = (
            f"/api/v1/namespaces/{namespace}/pods" if namespace else "/api/v1/pods"
        )
        return [RawPodData.model_validate(item) for item in self._list_items(endpoint)]

    def list_nodes(self) -> list[RawNodeData]:
        """Fetch all nodes from the Kubernetes API.

        Returns:
            List of validated RawNodeData objects.

        Raises:
            httpx.HTTPError: If HTTP request fails.
            RuntimeError: If the API returns a failure status.
        """
        items = self._list_items("/api/v1/nodes")
        return [RawNodeData.model_validate(item) for item in items]

    def list_resource_quotas(self, namespace: str | None = None) -> list[RawResourceQuota]:
        """Fetch resource quotas from the Kubernetes API.

        Args:
            namespace: Restrict the listing to one namespace; all
                namespaces when omitted.

        Returns:
            List of validated RawResourceQuota objects.

        Raises:
            httpx.HTTPError: If HTTP request fails.
            RuntimeError: If the API returns a failure status.
        """
        endpoint = (
            f"/api/v1/namespaces/{namespace}/resourcequotas"
            if namespace
            else "/api/v1/resourcequotas"
        )
        return [RawResourceQuota.model_validate(item) for item in self._list_items(endpoint)]
