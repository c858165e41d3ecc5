"""Descriptive statistics used by the aggregation and analytics engines."""

import math

import numpy as np
from attrs import define

from .utils import NumericInput, to_numpy


def mean(values: NumericInput) -> float:
    """Arithmetic mean; ``0.0`` for an empty input."""
    vals = to_numpy(values)
    if vals.size == 0:
        return 0.0
    return float(vals.mean())


def population_std(values: NumericInput) -> float:
    """Population standard deviation (divides by ``n``)."""
    vals = to_numpy(values)
    if vals.size == 0:
        return 0.0
    return float(vals.std(ddof=0))


def pearson(values_a: NumericInput, values_b: NumericInput) -> float:
    """Pearson correlation coefficient; NaN when either input has zero variance."""
    a = to_numpy(values_a)
    b = to_numpy(values_b)
    if a.shape != b.shape:
        raise ValueError("Both inputs must share the same shape.")
    if a.size == 0:
        return math.nan
    diff_a = a - a.mean()
    diff_b = b - b.mean()
    denominator = math.sqrt(float(np.dot(diff_a, diff_a)) * float(np.dot(diff_b, diff_b)))
    if denominator == 0:
        return math.nan
    return float(np.dot(diff_a, diff_b)) / denominator


@define(slots=True, frozen=True)
class Spread:
    """Population mean and standard deviation of a sample."""

    mean: float
    std: float
    size: int


def spread(values: NumericInput) -> Spread:
    """Return mean, population standard deviation and sample size together."""
    vals = to_numpy(values)
    return Spread(mean=mean(vals), std=population_std(vals), size=int(vals.size))


def percentage_change(current: float, previous: float) -> float:
    """Relative change in percent.

    A zero baseline yields ``100.0`` when ``current`` is positive and ``0.0``
    otherwise.
    """
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return (current - previous) / previous * 100
