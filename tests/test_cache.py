"""Tests for the inventory throttle cache.

The collector tests already show that a cache hit skips the API and reports
a negative scrape duration. These tests pin down what only the cache itself
can show: the window boundary, the (data, duration) contract, racing
scrapes and empty results.
"""

import threading
from unittest.mock import MagicMock, patch

from gpu_usage_report import cache
from gpu_usage_report.collectors.snapshot import ClusterSnapshot


def _snapshot() -> ClusterSnapshot:
    return ClusterSnapshot()


def test_fresh_cache_fetches_and_times_the_call():
    inventory = _snapshot()
    fetch_func = MagicMock(return_value=inventory)
    throttle = cache.AtomicThrottledCache(limit=60.0)

    data, duration = throttle.fetch_or_throttle(fetch_func)

    assert data is inventory
    assert isinstance(duration, float)
    assert duration >= 0.0
    fetch_func.assert_called_once()


def test_repeated_scrapes_within_window_reuse_inventory():
    inventory = _snapshot()
    fetch_func = MagicMock(return_value=inventory)
    throttle = cache.AtomicThrottledCache(limit=60.0)

    throttle.fetch_or_throttle(fetch_func)
    results = [throttle.fetch_or_throttle(fetch_func) for _ in range(3)]

    assert all(data is inventory for data, _ in results)
    assert all(duration is None for _, duration in results)
    fetch_func.assert_called_once()


@patch("gpu_usage_report.cache.time")
def test_inventory_refetched_after_window(mock_time):
    # start, end, last_fetch; then elapsed check followed by a full refetch
    mock_time.time.side_effect = [10.0, 10.5, 10.5, 75.0, 75.0, 75.2, 75.2]
    old, new = _snapshot(), _snapshot()
    fetch_func = MagicMock(side_effect=[old, new])
    throttle = cache.AtomicThrottledCache(limit=60.0)

    first, first_duration = throttle.fetch_or_throttle(fetch_func)
    second, second_duration = throttle.fetch_or_throttle(fetch_func)

    assert first is old
    assert second is new
    assert first_duration == 0.5
    assert second_duration is not None
    assert fetch_func.call_count == 2


@patch("gpu_usage_report.cache.time")
def test_inventory_kept_just_inside_window(mock_time):
    mock_time.time.side_effect = [10.0, 10.5, 10.5, 70.4]
    inventory = _snapshot()
    fetch_func = MagicMock(return_value=inventory)
    throttle = cache.AtomicThrottledCache(limit=60.0)

    throttle.fetch_or_throttle(fetch_func)
    data, duration = throttle.fetch_or_throttle(fetch_func)

    assert data is inventory
    assert duration is None
    fetch_func.assert_called_once()


def test_zero_limit_always_fetches():
    fetch_func = MagicMock(side_effect=[_snapshot(), _snapshot()])
    throttle = cache.AtomicThrottledCache(limit=0.0)

    throttle.fetch_or_throttle(fetch_func)
    _data, duration = throttle.fetch_or_throttle(fetch_func)

    assert duration is not None
    assert fetch_func.call_count == 2


def test_concurrent_scrapes_list_the_cluster_once():
    fetch_func = MagicMock(return_value=_snapshot())
    throttle = cache.AtomicThrottledCache(limit=60.0)
    scrapers = 16
    barrier = threading.Barrier(scrapers)

    def scrape():
        barrier.wait()
        throttle.fetch_or_throttle(fetch_func)

    threads = [threading.Thread(target=scrape) for _ in range(scrapers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    fetch_func.assert_called_once()


@patch("gpu_usage_report.cache.time")
def test_age_counts_from_end_of_fetch(mock_time):
    mock_time.time.side_effect = [10.0, 10.5, 10.5, 40.5]
    throttle = cache.AtomicThrottledCache(limit=60.0)

    assert throttle.age() is None
    throttle.fetch_or_throttle(MagicMock(return_value=_snapshot()))

    assert throttle.age() == 30.0


def test_none_result_is_not_cached():
    inventory = _snapshot()
    fetch_func = MagicMock(side_effect=[None, inventory])
    throttle = cache.AtomicThrottledCache(limit=60.0)

    first, _ = throttle.fetch_or_throttle(fetch_func)
    second, duration = throttle.fetch_or_throttle(fetch_func)

    assert first is None
    assert second is inventory
    assert duration is not None
