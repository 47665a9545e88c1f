"""HTTP server exposing cluster GPU usage as Prometheus metrics."""

import prometheus_client
import prometheus_client.core
import starlette.applications
import starlette.requests
import starlette.responses
import starlette.routing
import structlog

from . import collector, config, kubeapi
from .collectors import snapshot

logger = structlog.get_logger(__name__)


def create_registry_with_collectors(
    kube_client: kubeapi.KubeApiClient,
    gpu_resources: list[str],
    poll_limit: float,
) -> prometheus_client.core.CollectorRegistry:
    """Create a Prometheus registry with the GPU usage collector.

    Args:
        kube_client: Shared Kubernetes API client.
        gpu_resources: Extended resource names counted as GPUs.
        poll_limit: Minimum seconds between inventory refreshes.

    Returns:
        Custom (non-global) registry with the collector registered.
    """
    registry = prometheus_client.core.CollectorRegistry()

    resource_names = tuple(gpu_resources)
    usage_collector = collector.GpuUsageCollector(
        fetcher=lambda: snapshot.fetch(kube_client, resource_names),
        generator=snapshot.generate_metrics,
        poll_limit=poll_limit,
        scraper_description=f"API server {kube_client.display_name}",
    )
    registry.register(usage_collector)
    logger.info(
        "Registered collector",
        collector="gpu_usage",
        gpu_resources=",".join(resource_names),
    )

    return registry


def create_starlette_app(
    metrics_path: str,
    registry: prometheus_client.core.CollectorRegistry,
) -> starlette.applications.Starlette:
    """Create a Starlette application for serving Prometheus metrics.

    Args:
        metrics_path: URL path for metrics endpoint (e.g., "/metrics").
        registry: Prometheus collector registry.

    Returns:
        Configured Starlette application.
    """

    def metrics_endpoint(
        request: starlette.requests.Request,
    ) -> starlette.responses.Response:
        metrics_output = prometheus_client.generate_latest(registry)
        logger.info(
            "HTTP request",
            client_ip=request.client.host if request.client else "unknown",
            method=request.method,
            path=request.url.path,
        )
        return starlette.responses.PlainTextResponse(
            content=metrics_output,
            media_type="text/plain; version=0.0.4; charset=utf-8",
        )

    routes = [
        starlette.routing.Route(metrics_path, metrics_endpoint, methods=["GET"]),
    ]

    return starlette.applications.Starlette(routes=routes)


def create_exporter(cfg: config.ReporterConfig) -> starlette.applications.Starlette:
    """Construct the exporter ASGI app from validated config."""
    kube_client = config.create_client(cfg)
    logger.info(
        "Created shared API client",
        base_url=kube_client.base_url,
        name=kube_client.display_name,
    )

    registry = create_registry_with_collectors(
        kube_client=kube_client,
        gpu_resources=cfg.gpu_resources,
        poll_limit=cfg.poll_limit,
    )

    return create_starlette_app(
        metrics_path=cfg.metrics_path,
        registry=registry,
    )


def create_app(config_path: str | None = None) -> starlette.applications.Starlette:
    """Create the exporter ASGI app using a config path or environment default."""
    cfg = config.load_config(config.resolve_config_path(config_path))
    config.configure_logging(cfg.log_level)
    return create_exporter(cfg)
