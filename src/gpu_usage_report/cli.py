"""Command line interface: print a GPU usage report for a cluster.

Exit codes:
    0 - Report printed / configuration valid
    1 - Configuration or cluster access failed
    2 - Usage error
"""

import argparse
import sys

import httpx
import pydantic
import structlog

from . import __version__, config, kubeapi, report
from .collectors import snapshot

logger = structlog.get_logger(__name__)


def build_report(
    kube_client: kubeapi.KubeApiClient,
    cfg: config.ReporterConfig,
    *,
    namespace: str | None = None,
    include_pods: bool = False,
    bar_width: int | None = None,
) -> report.RenderedReport:
    """Collect the cluster inventory and render the report."""
    inventory = snapshot.fetch(kube_client, cfg.gpu_resources, namespace=namespace)
    logger.info(
        "Collected GPU inventory",
        claims=len(inventory.claims),
        gpu_nodes=len(inventory.capacity),
        quotas=len(inventory.quotas),
    )
    return report.generate_report(
        inventory.claims,
        inventory.capacity,
        quotas=inventory.quotas,
        bar_width=cfg.bar_width if bar_width is None else bar_width,
        title=kube_client.display_name,
        include_pods=include_pods,
    )


def _non_negative_int(value: str) -> int:
    number = int(value)
    if number < 0:
        msg = f"must be >= 0: {value}"
        raise argparse.ArgumentTypeError(msg)
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gpu-usage-report",
        description="Show GPU capacity and usage across a Kubernetes cluster.",
    )
    parser.add_argument("--version", action="version", version=__version__)
    parser.add_argument(
        "--config",
        help=f"JSON config file (default: ${config.CONFIG_ENV_VAR} "
        f"or {config.DEFAULT_CONFIG_PATH} when present)",
    )
    parser.add_argument(
        "--kubeconfig",
        help="Kubeconfig file to read the cluster from instead of the service account",
    )
    parser.add_argument(
        "--context",
        help="Kubeconfig context to use (default: the current context)",
    )
    parser.add_argument("--log-level", help="Override the configured log level")

    subparsers = parser.add_subparsers(dest="command")

    report_parser = subparsers.add_parser("report", help="Print the GPU usage report")
    report_parser.add_argument(
        "-n",
        "--namespace",
        help="Only count pods in this namespace (capacity stays cluster-wide)",
    )
    report_parser.add_argument(
        "--bar-width",
        type=_non_negative_int,
        help="Width of the utilization bar",
    )
    report_parser.add_argument(
        "--pods",
        action="store_true",
        help="Also list every GPU pod",
    )

    subparsers.add_parser("check-config", help="Validate the configuration and exit")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    command = args.command or "report"

    config.configure_logging(args.log_level or "WARNING")
    try:
        cfg = config.load_effective_config(args.config)
    except (FileNotFoundError, ValueError) as e:
        # pydantic.ValidationError and json.JSONDecodeError are ValueErrors
        logger.error("Invalid configuration", error=str(e))
        return 1
    config.configure_logging(args.log_level or cfg.log_level)

    overrides = {
        key: value
        for key, value in (("kubeconfig", args.kubeconfig), ("context", args.context))
        if value is not None
    }
    if overrides:
        cfg = cfg.model_copy(update=overrides)

    if command == "check-config":
        print(cfg.model_dump_json(indent=2))
        return 0

    try:
        with config.create_client(cfg) as kube_client:
            rendered = build_report(
                kube_client,
                cfg,
                namespace=getattr(args, "namespace", None),
                include_pods=getattr(args, "pods", False),
                bar_width=getattr(args, "bar_width", None),
            )
    except (
        FileNotFoundError,
        kubeapi.ExpiredTokenError,
        kubeapi.KubeconfigError,
        httpx.HTTPError,
        pydantic.ValidationError,
        RuntimeError,
    ) as e:
        logger.error("Failed to collect GPU inventory", error=str(e))
        return 1

    sys.stdout.write(rendered.render())
    return 0


if __name__ == "__main__":
    sys.exit(main())
