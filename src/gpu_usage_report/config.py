"""Configuration and logging setup for the GPU usage reporter."""

import json
import logging
import os
import pathlib
import sys

import pydantic
import structlog

from . import kubeapi
from .collectors.claims import DEFAULT_GPU_RESOURCES

CONFIG_ENV_VAR = "GPU_REPORT_CONFIG_PATH"
DEFAULT_CONFIG_PATH = "/config.json"


class ReporterConfig(pydantic.BaseModel):
    """Configuration shared by the report CLI and the metrics exporter."""

    api_server_url: str = pydantic.Field(
        "https://kubernetes.default.svc",
        description="Base URL of the Kubernetes API server",
    )
    token_file: str | None = pydantic.Field(
        "/var/run/secrets/kubernetes.io/serviceaccount/token",
        description="Path to file containing a bearer token",
    )
    ca_file: str | None = pydantic.Field(
        "/var/run/secrets/kubernetes.io/serviceaccount/ca.crt",
        description="CA bundle for the API server certificate",
    )
    kubeconfig: str | None = pydantic.Field(
        None,
        description="Kubeconfig file used instead of api_server_url, token_file "
        "and ca_file; $KUBECONFIG or ~/.kube/config when only context is set",
    )
    context: str | None = pydantic.Field(
        None,
        description="Kubeconfig context; the current context when omitted",
    )
    timeout: float = pydantic.Field(
        kubeapi.DEFAULT_TIMEOUT,
        description="Request timeout in seconds",
        gt=0,
    )
    gpu_resources: list[str] = pydantic.Field(
        default_factory=lambda: list(DEFAULT_GPU_RESOURCES),
        description="Extended resource names counted as GPUs",
        min_length=1,
    )
    bar_width: int = pydantic.Field(
        30,
        description="Width of the utilization bar in characters",
        ge=0,
    )
    port: int = pydantic.Field(9093, description="HTTP server port", gt=0, lt=65536)
    metrics_path: str = pydantic.Field(
        "/metrics",
        description="URL path for metrics endpoint",
    )
    poll_limit: float = pydantic.Field(
        60.0,
        description="Minimum seconds between inventory refreshes",
        gt=0,
    )
    log_level: str = pydantic.Field("INFO", description="Logging level")


def configure_logging(log_level_name: str, stream=None) -> None:
    """Configure structlog for logfmt output.

    Args:
        log_level_name: Level name such as "INFO" or "debug".
        stream: File to write to; stderr by default so report output on
            stdout stays clean.
    """
    log_level = getattr(logging, log_level_name.upper(), logging.INFO)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.EventRenamer("msg"),
            structlog.processors.format_exc_info,
            structlog.processors.LogfmtRenderer(
                key_order=("timestamp", "level", "msg"),
            ),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream or sys.stderr),
        cache_logger_on_first_use=True,
    )


def resolve_config_path(config_path: str | None = None) -> str:
    """Return the explicit path, the environment override or the default."""
    return config_path or os.environ.get(CONFIG_ENV_VAR, DEFAULT_CONFIG_PATH)


def load_config(config_path: str) -> ReporterConfig:
    """Load configuration from JSON file."""
    path = pathlib.Path(config_path)
    if not path.exists():
        msg = f"Configuration file not found: {config_path}"
        raise FileNotFoundError(msg)

    with path.open("r") as f:
        data = json.load(f)

    return ReporterConfig(**data)


def load_effective_config(config_path: str | None = None) -> ReporterConfig:
    """Load the config file, or fall back to defaults when none is present.

    An explicit path, or one named by the environment, must exist. Only the
    default location may be absent, so the CLI also runs from a workstation
    with nothing but a kubeconfig.
    """
    explicit = config_path or os.environ.get(CONFIG_ENV_VAR)
    if explicit:
        return load_config(explicit)
    if pathlib.Path(DEFAULT_CONFIG_PATH).exists():
        return load_config(DEFAULT_CONFIG_PATH)
    return ReporterConfig()


def create_client(config: ReporterConfig) -> kubeapi.KubeApiClient:
    """Build a Kubernetes API client from validated config.

    A configured kubeconfig or context takes precedence over the in-cluster
    service account settings.
    """
    if config.kubeconfig or config.context:
        return kubeapi.client_from_kubeconfig(
            config.kubeconfig,
            config.context,
            timeout=config.timeout,
        )
    return kubeapi.KubeApiClient(
        base_url=config.api_server_url,
        token_file=config.token_file,
        ca_file=config.ca_file,
        timeout=config.timeout,
    )
