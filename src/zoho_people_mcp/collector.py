"""Prometheus collector exposing Zoho People client traffic counters.

Reads the client's :class:`RequestStats` at scrape time instead of
registering global metrics, so several clients can be exported from
separate registries.
"""

from collections.abc import Callable, Iterator
from typing import TypeAlias

import structlog
from prometheus_client.core import CounterMetricFamily
from prometheus_client.metrics_core import Metric
from prometheus_client.registry import Collector

from .peopleapi import RequestStats

logger = structlog.get_logger(__name__)

StatsSource: TypeAlias = Callable[[], RequestStats]

# (metric suffix, RequestStats attribute, help text)
_COUNTERS = (
    ("requests", "requests", "requests sent to the Zoho People API"),
    ("failures", "failures", "failed Zoho People API requests"),
    ("rate_limited", "rate_limited", "Zoho People API responses with HTTP 429"),
    ("token_refreshes", "token_refreshes", "access token refreshes after HTTP 401"),
    ("pages_fetched", "pages_fetched", "record pages fetched by automatic pagination"),
)


class PeopleApiCollector(Collector):
    """Prometheus collector for Zoho People client counters.

    The stats source is injected so the collector does not depend on how
    the client is constructed.
    """

    def __init__(self, stats_source: StatsSource, data_center: str):
        """Initialize the collector.

        Args:
            stats_source: Zero-argument function returning current stats.
            data_center: Zoho data center label attached to every sample.
        """
        self._stats_source = stats_source
        self._data_center = data_center

    def collect(self) -> Iterator[Metric]:
        """Yield one counter family per tracked statistic."""
        stats = self._stats_source()
        for suffix, attribute, description in _COUNTERS:
            counter = CounterMetricFamily(
                f"zoho_people_api_{suffix}",
                description,
                labels=["data_center"],
            )
            counter.add_metric([self._data_center], getattr(stats, attribute))
            yield counter
        logger.debug("Collected client metrics", requests=stats.requests)
