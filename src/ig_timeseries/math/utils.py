"""Common helper functions for numeric routines."""

from collections.abc import Iterable
from typing import TypeAlias, cast

import numpy as np
import numpy.typing as npt

FloatArray: TypeAlias = npt.NDArray[np.float64]
NumericInput: TypeAlias = npt.ArrayLike | Iterable[float]


def to_numpy(values: NumericInput) -> FloatArray:
    """Coerce the input sequence into a 1D NumPy float array."""
    if not isinstance(values, np.ndarray):
        values = list(values)  # type: ignore[arg-type]
    arr = cast(FloatArray, np.asarray(values, dtype=float))
    if arr.ndim != 1:
        raise ValueError("Values must be a 1D sequence.")
    return arr


def is_valid_value(value: object) -> bool:
    """Return True for finite, non-negative numbers (the usable metric values)."""
    if value is None or isinstance(value, bool):
        return False
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return False
    return bool(np.isfinite(number)) and number >= 0


def is_finite(value: object) -> bool:
    """Return True for finite numbers regardless of sign."""
    if value is None or isinstance(value, bool):
        return False
    try:
        return bool(np.isfinite(float(value)))  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return False


def round_half_up(value: float, digits: int = 0) -> float:
    """Round away from zero on ties, matching spreadsheet-style rounding."""
    factor = 10.0**digits
    return float(np.sign(value) * np.floor(abs(value) * factor + 0.5) / factor)
