"""Declarative table of export metrics and their aggregation legality.

Every summing code path consults :func:`assert_legal` before adding values
together. ``reach`` counts unique people within one month, so adding months
or accounts double counts anyone seen more than once.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from types import MappingProxyType

import structlog
from attrs import define, field

from ..errors import ForbiddenAggregationError, UnknownMetricError

logger = structlog.get_logger(__name__)


class MetricCategory(str, Enum):
    """Semantic class of a metric."""

    UNIQUE_PERSONS = "unique_persons"
    COUNTABLE_METRIC = "countable_metric"
    COUNTABLE_EVENTS = "countable_events"


class Aggregation(str, Enum):
    """Reductions the engines know how to apply."""

    SUM = "sum"
    AVERAGE = "average"
    MIN = "min"
    MAX = "max"


# Spellings accepted by aggregate_metric() and mapped onto the canonical operations.
OPERATION_ALIASES: Mapping[str, Aggregation] = MappingProxyType(
    {
        "sum": Aggregation.SUM,
        "total": Aggregation.SUM,
        "average": Aggregation.AVERAGE,
        "mean": Aggregation.AVERAGE,
        "min": Aggregation.MIN,
        "minimum": Aggregation.MIN,
        "max": Aggregation.MAX,
        "maximum": Aggregation.MAX,
    }
)

SUMMING_OPERATIONS = frozenset({"sum", "total"})


@define(slots=True, frozen=True)
class MetricDefinition:
    """Properties of one metric column in the monthly export."""

    key: str
    category: MetricCategory
    display_name: str
    description: str
    unit: str
    csv_column: str
    summable_across_time: bool
    summable_across_accounts: bool
    preferred_aggregation: Aggregation
    valid_aggregations: frozenset[Aggregation] = field(converter=frozenset)
    warning_note: str | None = None

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-friendly representation."""
        return {
            "key": self.key,
            "category": self.category.value,
            "display_name": self.display_name,
            "description": self.description,
            "unit": self.unit,
            "csv_column": self.csv_column,
            "summable_across_time": self.summable_across_time,
            "summable_across_accounts": self.summable_across_accounts,
            "preferred_aggregation": self.preferred_aggregation.value,
            "valid_aggregations": sorted(agg.value for agg in self.valid_aggregations),
            "warning_note": self.warning_note,
        }


_ALL_AGGREGATIONS = frozenset(Aggregation)

METRICS: Mapping[str, MetricDefinition] = MappingProxyType(
    {
        "reach": MetricDefinition(
            key="reach",
            category=MetricCategory.UNIQUE_PERSONS,
            display_name="Reach",
            description="Unique people who saw the account's content during the month",
            unit="people",
            csv_column="Reach",
            summable_across_time=False,
            summable_across_accounts=False,
            preferred_aggregation=Aggregation.AVERAGE,
            valid_aggregations={Aggregation.AVERAGE, Aggregation.MIN, Aggregation.MAX},
            warning_note="Never sum across months or accounts: values count unique people",
        ),
        "views": MetricDefinition(
            key="views",
            category=MetricCategory.COUNTABLE_EVENTS,
            display_name="Views",
            description="Content views during the month",
            unit="views",
            csv_column="Views",
            summable_across_time=True,
            summable_across_accounts=True,
            preferred_aggregation=Aggregation.SUM,
            valid_aggregations=_ALL_AGGREGATIONS,
        ),
        "followers": MetricDefinition(
            key="followers",
            category=MetricCategory.COUNTABLE_METRIC,
            display_name="Followers",
            description="Followers at the end of the month",
            unit="followers",
            csv_column="Followers",
            summable_across_time=True,
            summable_across_accounts=True,
            preferred_aggregation=Aggregation.SUM,
            valid_aggregations=_ALL_AGGREGATIONS,
        ),
    }
)

METRIC_KEYS: tuple[str, ...] = tuple(METRICS)


def get(metric: str) -> MetricDefinition:
    """Return the definition for ``metric`` or raise :class:`UnknownMetricError`."""
    try:
        return METRICS[metric]
    except (KeyError, TypeError):
        raise UnknownMetricError(metric) from None


def is_known(metric: str) -> bool:
    """Return True when ``metric`` is part of the registry."""
    return isinstance(metric, str) and metric in METRICS


def is_summable(metric: str) -> bool:
    """Return True when values may be added across months."""
    return get(metric).summable_across_time


def is_summable_across_accounts(metric: str) -> bool:
    """Return True when values may be added across accounts in one month."""
    return get(metric).summable_across_accounts


def category_of(metric: str) -> MetricCategory:
    """Return the semantic category of ``metric``."""
    return get(metric).category


def valid_aggregations_for(metric: str) -> frozenset[Aggregation]:
    """Return the reductions that are meaningful for ``metric``."""
    return get(metric).valid_aggregations


def preferred_aggregation_for(metric: str) -> Aggregation:
    """Return the default reduction for ``metric``."""
    return get(metric).preferred_aggregation


def normalize_operation(operation: str) -> Aggregation:
    """Map an operation spelling such as ``total`` or ``mean`` onto :class:`Aggregation`."""
    if not isinstance(operation, str):
        raise TypeError(f"operation must be a string, got {type(operation).__name__}")
    try:
        return OPERATION_ALIASES[operation.strip().lower()]
    except KeyError:
        valid = ", ".join(sorted(OPERATION_ALIASES))
        raise ValueError(f"Unknown operation {operation!r}. Choose one of: {valid}.") from None


def is_valid_aggregation(metric: str, operation: str) -> bool:
    """Return True when ``operation`` is listed as valid for ``metric``."""
    try:
        aggregation = normalize_operation(operation)
    except ValueError:
        return False
    return aggregation in valid_aggregations_for(metric)


def assert_legal(operation: str, metric: str) -> None:
    """Raise :class:`ForbiddenAggregationError` when summing a non time-summable metric."""
    definition = get(metric)
    if not isinstance(operation, str):
        raise TypeError(f"operation must be a string, got {type(operation).__name__}")
    if operation.strip().lower() in SUMMING_OPERATIONS and not definition.summable_across_time:
        logger.error("registry.forbidden_aggregation", operation=operation, metric=metric)
        raise ForbiddenAggregationError(
            operation,
            metric,
            f"{definition.display_name} counts unique people per month and can never be "
            f"summed across months; use {definition.preferred_aggregation.value} instead.",
        )


def assert_legal_across_accounts(operation: str, metric: str) -> None:
    """Raise :class:`ForbiddenAggregationError` when summing across accounts is meaningless."""
    definition = get(metric)
    if not isinstance(operation, str):
        raise TypeError(f"operation must be a string, got {type(operation).__name__}")
    if operation.strip().lower() in SUMMING_OPERATIONS and not definition.summable_across_accounts:
        logger.error("registry.forbidden_aggregation", operation=operation, metric=metric)
        raise ForbiddenAggregationError(
            operation,
            metric,
            f"{definition.display_name} cannot be summed across accounts because the "
            "overlap between their audiences is unknown.",
        )
    assert_legal(operation, metric)


@define(slots=True, frozen=True)
class OperationCheck:
    """Non-raising verdict on an ``(operation, metric)`` pair."""

    is_valid: bool
    error: str | None = None
    suggestion: str | None = None
    warning_note: str | None = None


def check_operation(operation: str, metric: str) -> OperationCheck:
    """Explain whether ``operation`` may be applied to ``metric`` without raising."""
    if not is_known(metric):
        return OperationCheck(is_valid=False, error=f"Unknown metric: {metric}")
    definition = METRICS[metric]
    preferred = definition.preferred_aggregation.value
    try:
        assert_legal(operation, metric)
    except ForbiddenAggregationError as exc:
        return OperationCheck(
            is_valid=False,
            error=str(exc),
            suggestion=f"Use {preferred} instead",
            warning_note=definition.warning_note,
        )
    if not is_valid_aggregation(metric, operation):
        valid = ", ".join(sorted(agg.value for agg in definition.valid_aggregations))
        return OperationCheck(
            is_valid=False,
            error=f"Operation {operation!r} is not valid for {definition.display_name}",
            suggestion=f"Use {preferred} (or: {valid})",
            warning_note=definition.warning_note,
        )
    return OperationCheck(is_valid=True)


def summable_metrics() -> list[str]:
    """Return metric keys that may be summed across months."""
    return [key for key, definition in METRICS.items() if definition.summable_across_time]


def non_summable_metrics() -> list[str]:
    """Return metric keys that may never be summed across months."""
    return [key for key, definition in METRICS.items() if not definition.summable_across_time]


def metrics_by_category(category: MetricCategory | str) -> list[str]:
    """Return the metric keys belonging to ``category``."""
    wanted = MetricCategory(category)
    return [key for key, definition in METRICS.items() if definition.category is wanted]


def csv_column_map() -> dict[str, str]:
    """Map export column headers onto metric keys."""
    return {definition.csv_column: key for key, definition in METRICS.items()}


def documentation() -> dict[str, object]:
    """Describe every metric and the summing rules in one JSON-friendly document."""
    summable = summable_metrics()
    non_summable = non_summable_metrics()
    return {
        "overview": {
            "total_metrics": len(METRICS),
            "summable_count": len(summable),
            "non_summable_count": len(non_summable),
        },
        "metrics": {key: definition.to_dict() for key, definition in METRICS.items()},
        "rules": {
            "summable": {
                "metrics": summable,
                "operations": ["sum", "average", "min", "max"],
            },
            "non_summable": {
                "metrics": non_summable,
                "operations": ["average", "min", "max"],
                "warning": "Summing across months or accounts double counts unique people",
            },
        },
        "csv_mapping": csv_column_map(),
    }


__all__ = [
    "Aggregation",
    "METRICS",
    "METRIC_KEYS",
    "MetricCategory",
    "MetricDefinition",
    "OperationCheck",
    "assert_legal",
    "assert_legal_across_accounts",
    "category_of",
    "check_operation",
    "csv_column_map",
    "documentation",
    "get",
    "is_known",
    "is_summable",
    "is_summable_across_accounts",
    "is_valid_aggregation",
    "metrics_by_category",
    "non_summable_metrics",
    "normalize_operation",
    "preferred_aggregation_for",
    "summable_metrics",
    "valid_aggregations_for",
]
