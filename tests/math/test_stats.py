"""Unit tests for the math module."""

import math

import numpy as np
import pytest

from ig_timeseries.math import (
    mean,
    pearson,
    percentage_change,
    population_std,
    round_half_up,
    spread,
)


@pytest.fixture
def sample_data():
    """Return a sample dataset for testing."""
    return np.array([2, 4, 4, 4, 5, 5, 7, 9])


def test_population_statistics(sample_data):
    """Test population mean and standard deviation."""
    assert mean(sample_data) == pytest.approx(5.0)
    assert population_std(sample_data) == pytest.approx(2.0)
    result = spread(sample_data)
    assert (result.mean, result.std, result.size) == (pytest.approx(5.0), pytest.approx(2.0), 8)


def test_empty_inputs():
    """Test that empty inputs reduce to zero."""
    assert mean([]) == 0.0
    assert population_std([]) == 0.0


def test_pearson():
    """Test perfect, inverse and degenerate correlations."""
    assert pearson([1, 2, 3], [2, 4, 6]) == pytest.approx(1.0)
    assert pearson([1, 2, 3], [3, 2, 1]) == pytest.approx(-1.0)
    assert math.isnan(pearson([1, 1, 1], [1, 2, 3]))
    with pytest.raises(ValueError):
        pearson([1, 2], [1, 2, 3])


def test_percentage_change_zero_baseline():
    """Test the zero baseline convention."""
    assert percentage_change(150, 100) == pytest.approx(50.0)
    assert percentage_change(90, 150) == pytest.approx(-40.0)
    assert percentage_change(5, 0) == 100.0
    assert percentage_change(0, 0) == 0.0


def test_round_half_up():
    """Test spreadsheet-style rounding."""
    assert round_half_up(2.5) == 3.0
    assert round_half_up(-2.5) == -3.0
    assert round_half_up(0.125, 2) == pytest.approx(0.13)
