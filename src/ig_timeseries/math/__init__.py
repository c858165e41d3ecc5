"""Numeric helpers for export analytics."""

from .stats import (  # noqa: F401
    Spread,
    mean,
    pearson,
    percentage_change,
    population_std,
    spread,
)
from .utils import is_finite, is_valid_value, round_half_up, to_numpy  # noqa: F401

__all__ = [
    "Spread",
    "is_finite",
    "is_valid_value",
    "mean",
    "pearson",
    "percentage_change",
    "population_std",
    "round_half_up",
    "spread",
    "to_numpy",
]
