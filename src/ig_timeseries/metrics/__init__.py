"""Metric classification registry."""

from . import registry
from .registry import (
    METRIC_KEYS,
    METRICS,
    Aggregation,
    MetricCategory,
    MetricDefinition,
    assert_legal,
    assert_legal_across_accounts,
    is_summable,
)

__all__ = [
    "Aggregation",
    "METRICS",
    "METRIC_KEYS",
    "MetricCategory",
    "MetricDefinition",
    "assert_legal",
    "assert_legal_across_accounts",
    "is_summable",
    "registry",
]
