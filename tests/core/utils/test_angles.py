"""
Unit tests for indoorloc/utils/angles.py (angle wrapping and circular statistics).

Tests cover:
    - Wrapping in radians and degrees
    - Shortest signed differences
    - Circular mean and median across the wraparound

Run with: pytest tests/core/utils/test_angles.py -v
"""

import unittest

import numpy as np
import pytest

from indoorloc.utils.angles import (
    angle_diff,
    angle_diff_deg,
    circular_mean,
    circular_mean_deg,
    circular_median_deg,
    wrap_angle,
    wrap_angle_array,
    wrap_degrees,
)


class TestWrapping(unittest.TestCase):
    """Test suite for angle wrapping."""

    def test_wrap_angle_range(self) -> None:
        """Wrapped angles stay in [-π, π]."""
        for angle in np.linspace(-20.0, 20.0, 81):
            wrapped = wrap_angle(angle)
            assert -np.pi <= wrapped <= np.pi
            assert np.isclose(np.cos(wrapped), np.cos(angle))
            assert np.isclose(np.sin(wrapped), np.sin(angle))

    def test_wrap_angle_array(self) -> None:
        """Array wrapping matches scalar wrapping."""
        angles = np.array([0.0, 4.0, -4.0, 7.0])
        wrapped = wrap_angle_array(angles)
        expected = [wrap_angle(a) for a in angles]
        np.testing.assert_allclose(wrapped, expected)

    def test_wrap_degrees(self) -> None:
        """Degrees wrap to [0, 360)."""
        assert wrap_degrees(370.0) == pytest.approx(10.0)
        assert wrap_degrees(-10.0) == pytest.approx(350.0)
        assert wrap_degrees(360.0) == 0.0
        assert 0.0 <= wrap_degrees(-1e-14) < 360.0

    def test_angle_diff_shortest(self) -> None:
        """Differences take the short way round."""
        assert np.isclose(angle_diff(np.pi - 0.1, -np.pi + 0.1), -0.2)
        assert np.isclose(angle_diff_deg(350.0, 10.0), -20.0)
        assert np.isclose(angle_diff_deg(10.0, 350.0), 20.0)


class TestCircularStatistics(unittest.TestCase):
    """Test suite for circular mean and median."""

    def test_circular_mean_across_pi(self) -> None:
        """Mean of angles straddling ±π is near π, not 0."""
        mean = circular_mean([np.pi - 0.1, -np.pi + 0.1])
        assert np.isclose(abs(mean), np.pi, atol=1e-9)

    def test_circular_mean_deg_wraparound(self) -> None:
        """Mean of 350° and 10° is 0°."""
        mean = circular_mean_deg([350.0, 10.0])
        assert min(mean, 360.0 - mean) < 1e-9

    def test_circular_median_deg_wraparound(self) -> None:
        """Median handles headings on both sides of north."""
        assert np.isclose(circular_median_deg([358.0, 359.0, 1.0, 2.0, 3.0]), 1.0)

    def test_circular_median_rejects_outlier(self) -> None:
        """A single outlier does not move the median."""
        assert np.isclose(circular_median_deg([90.0, 91.0, 89.0, 90.5, 200.0]), 90.5)

    def test_empty_inputs_raise(self) -> None:
        """Empty inputs are rejected."""
        with pytest.raises(ValueError, match="at least one"):
            circular_mean([])
        with pytest.raises(ValueError, match="at least one"):
            circular_median_deg([])


if __name__ == "__main__":
    unittest.main()
