"""DORA metrics engine for GitHub organizations, repositories and contributors."""

from dora_metrics.aggregator import DoraAggregator
from dora_metrics.models import DoraMetrics, Granularity, MetricTuple, TimeWindow
from dora_metrics.windows import bucketize

__all__ = ["DoraAggregator", "DoraMetrics", "Granularity", "MetricTuple", "TimeWindow", "bucketize"]
__version__ = "1.0.0"
