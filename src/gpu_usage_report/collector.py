"""Prometheus collector for cluster GPU usage.

Wraps a zero-argument fetcher (the Kubernetes client is bound in a closure)
and a metrics generator, with a throttled cache in between so scrapes do not
translate one-to-one into API server list calls.
"""

from collections.abc import Callable, Iterator
from typing import Generic, TypeAlias, TypeVar

import structlog
from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily
from prometheus_client.metrics_core import Metric
from prometheus_client.registry import Collector

from .cache import AtomicThrottledCache

logger = structlog.get_logger(__name__)

T = TypeVar("T")


Fetcher: TypeAlias = Callable[[], T]
MetricsGenerator: TypeAlias = Callable[[T], Iterator[Metric]]


class GpuUsageCollector(Collector, Generic[T]):
    """Prometheus collector yielding scrape metadata plus GPU usage metrics.

    The fetcher gathers the inventory, the generator turns it into metric
    families, and fetch failures are counted instead of propagated so that a
    broken API server still produces a scrape.
    """

    def __init__(
        self,
        fetcher: Fetcher[T],
        generator: MetricsGenerator[T],
        poll_limit: float,
        scraper_description: str,
        metric_prefix: str = "k8s_gpu",
    ):
        """Initialize the collector.

        Args:
            fetcher: Function that fetches the inventory (dependencies
                pre-injected).
            generator: Function that generates Prometheus metrics from it.
            poll_limit: Minimum seconds between inventory refreshes.
            scraper_description: Where data comes from, for logging and
                metric help text (e.g., API server URL).
            metric_prefix: Prefix of the scrape metadata metric names.
        """
        self._fetcher = fetcher
        self._generator = generator
        self._metric_prefix = metric_prefix
        self._cache = AtomicThrottledCache[T](poll_limit)
        self._error_count = 0
        self._scraper_desc = scraper_description

    def fetch_inventory(self) -> tuple[T, float | None]:
        """Return the cached inventory or fetch a fresh one.

        Returns:
            Tuple of (data, fetch_duration); fetch_duration is None on a
            cache hit.
        """
        return self._cache.fetch_or_throttle(self._fetcher)

    def collect(self) -> Iterator[Metric]:
        """Collect metrics for a Prometheus scrape.

        Yields:
            Scrape duration, error count and inventory age, then the
            generated GPU usage metrics when the inventory could be fetched.
        """
        data: T | None = None
        try:
            data, fetch_duration = self.fetch_inventory()
            # -1 marks a cache hit
            duration_value = fetch_duration if fetch_duration is not None else -1.0
        except Exception:
            logger.exception(
                "Failed to fetch GPU inventory",
                source=self._scraper_desc,
            )
            self._error_count += 1
            duration_value = -1.0

        scrape_duration = GaugeMetricFamily(
            f"{self._metric_prefix}_scrape_duration",
            f"inventory scrape duration from {self._scraper_desc} in seconds, "
            f"-1 indicates cache hit or error",
        )
        scrape_duration.add_metric([], duration_value)
        yield scrape_duration

        error_counter = CounterMetricFamily(
            f"{self._metric_prefix}_scrape_error",
            "gpu inventory scrape errors",
        )
        error_counter.add_metric([], self._error_count)
        yield error_counter

        # Absent until the first successful listing
        age = self._cache.age()
        if age is not None:
            inventory_age = GaugeMetricFamily(
                f"{self._metric_prefix}_inventory_age_seconds",
                "seconds since the gpu inventory was listed",
            )
            inventory_age.add_metric([], age)
            yield inventory_age

        if data is not None:
            yield from self._generator(data)
