"""
Unit tests for indoorloc/sensors/types.py.

Tests cover:
    - Sample coercion and plausibility limits
    - Optional magnetometer / barometer channels
    - NativeStepBatch validation
    - Enumeration values

Run with: pytest tests/core/sensors/test_sensor_records.py -v
"""

import unittest

import numpy as np
import pytest

from indoorloc.config import SampleLimits
from indoorloc.sensors.types import (
    ActivityMode,
    DetectionMethod,
    NativeStepBatch,
    Sample,
    StepSource,
)


class TestSample(unittest.TestCase):
    """Test suite for Sample."""

    def test_coerces_to_arrays(self) -> None:
        """Lists become float arrays and the timestamp a float."""
        s = Sample(5, [0, 0, 9.81], [0, 0, 0])
        assert isinstance(s.accel, np.ndarray)
        assert s.accel.dtype == float
        assert isinstance(s.t_ms, float)

    def test_bad_shape_raises(self) -> None:
        with pytest.raises(ValueError, match="accel must have shape"):
            Sample(0.0, [0.0, 9.81], [0.0, 0.0, 0.0])

    def test_valid_flat_sample(self) -> None:
        assert Sample(0.0, [0.0, 0.0, 9.81], [0.0, 0.0, 0.0]).is_valid()

    def test_non_finite_invalid(self) -> None:
        """NaN in the inertial channels or timestamp invalidates the sample."""
        assert not Sample(0.0, [np.nan, 0.0, 9.81], [0.0, 0.0, 0.0]).is_valid()
        assert not Sample(0.0, [0.0, 0.0, 9.81], [0.0, np.inf, 0.0]).is_valid()
        assert not Sample(np.nan, [0.0, 0.0, 9.81], [0.0, 0.0, 0.0]).is_valid()

    def test_plausibility_limits(self) -> None:
        """Norms above 10 g or 35 rad/s are rejected."""
        limits = SampleLimits()
        assert not Sample(0.0, [0.0, 0.0, 99.0], [0.0, 0.0, 0.0]).is_valid(limits)
        assert Sample(0.0, [0.0, 0.0, 98.0], [0.0, 0.0, 0.0]).is_valid(limits)
        assert not Sample(0.0, [0.0, 0.0, 9.81], [0.0, 0.0, 36.0]).is_valid(limits)

    def test_bad_optional_channels_are_missing(self) -> None:
        """Non-finite mag / pressure do not invalidate the sample."""
        s = Sample(0.0, [0.0, 0.0, 9.81], [0.0, 0.0, 0.0], mag=[np.nan, 0.0, 0.0],
                   pressure_hpa=float("nan"))
        assert s.is_valid()
        assert s.usable_mag is None
        assert s.usable_pressure is None

    def test_usable_channels(self) -> None:
        s = Sample(0.0, [0.0, 0.0, 9.81], [0.0, 0.0, 0.0], mag=[20.0, 0.0, 40.0],
                   pressure_hpa=1000.0)
        np.testing.assert_allclose(s.usable_mag, [20.0, 0.0, 40.0])
        assert s.usable_pressure == 1000.0


class TestNativeStepBatch(unittest.TestCase):
    """Test suite for NativeStepBatch validation."""

    def test_valid(self) -> None:
        batch = NativeStepBatch(4, 0.75, 1000.0, 2200.0)
        assert batch.total_steps is None

    def test_negative_count(self) -> None:
        with pytest.raises(ValueError, match="step_count"):
            NativeStepBatch(-1, 0.75, 0.0, 1.0)

    def test_non_positive_length(self) -> None:
        with pytest.raises(ValueError, match="step_length"):
            NativeStepBatch(1, 0.0, 0.0, 1.0)

    def test_reversed_interval(self) -> None:
        with pytest.raises(ValueError, match="must be after"):
            NativeStepBatch(1, 0.7, 10.0, 10.0)


class TestEnums(unittest.TestCase):
    def test_string_values(self) -> None:
        """Enumerations serialize as lowercase strings."""
        assert ActivityMode.RUNNING.value == "running"
        assert StepSource.NATIVE == "native"
        assert DetectionMethod("magnitude_fallback") is DetectionMethod.MAGNITUDE_FALLBACK


if __name__ == "__main__":
    unittest.main()
