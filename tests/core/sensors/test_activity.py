"""
Unit tests for indoorloc/sensors/activity.py (activity classification).

Tests cover:
    - Feature extraction from an accelerometer window
    - Each classification rule in order
    - Mode parsing

Run with: pytest tests/core/sensors/test_activity.py -v
"""

import unittest

import numpy as np
import pytest

from indoorloc.errors import ConfigurationError
from indoorloc.sensors.activity import (
    classify_activity,
    compute_features,
    parse_mode,
    pitch_deg,
)
from indoorloc.sensors.types import ActivityFeatures, ActivityMode
from indoorloc.utils.filters import PeakScan


class TestFeatures(unittest.TestCase):
    """Test suite for compute_features()."""

    def test_flat_window(self) -> None:
        accels = np.tile([0.0, 0.0, 9.81], (30, 1))
        t = np.arange(30) * 40.0
        features = compute_features(accels, t, None)
        assert features.variance == pytest.approx(0.0)
        assert features.frequency == 0.0
        assert features.amplitude == 0.0
        assert features.pitch == pytest.approx(0.0)

    def test_frequency_and_amplitude_from_scan(self) -> None:
        """Frequency is peaks over the window span."""
        accels = np.tile([0.0, 0.0, 9.81], (26, 1))
        t = np.arange(26) * 40.0  # 1 s span
        scan = PeakScan(np.array([5, 15]), np.array([0.4, 0.9]), 0.2)
        features = compute_features(accels, t, scan)
        assert features.frequency == pytest.approx(2.0)
        assert features.amplitude == pytest.approx(0.9)

    def test_empty_window(self) -> None:
        assert compute_features(np.zeros((0, 3)), [], None) == ActivityFeatures()

    def test_pitch(self) -> None:
        """A device tilted nose-up by 45° reports |pitch| = 45°."""
        g = 9.81
        accel = np.array([-g * np.sin(np.pi / 4), 0.0, g * np.cos(np.pi / 4)])
        assert pitch_deg(accel) == pytest.approx(45.0)


class TestClassification(unittest.TestCase):
    """Test suite for the ordered decision rules."""

    def test_stationary(self) -> None:
        features = ActivityFeatures(variance=0.1, frequency=3.0, amplitude=2.0)
        assert classify_activity(features) == ActivityMode.STATIONARY

    def test_large_amplitude_is_walking(self) -> None:
        """Amplitude above 1.0 wins over a running frequency."""
        features = ActivityFeatures(variance=1.0, frequency=3.0, amplitude=1.5)
        assert classify_activity(features) == ActivityMode.WALKING

    def test_pocket_pitch_is_walking(self) -> None:
        features = ActivityFeatures(variance=1.0, frequency=3.0, amplitude=0.5, pitch=-45.0)
        assert classify_activity(features) == ActivityMode.WALKING

    def test_running_frequency(self) -> None:
        features = ActivityFeatures(variance=1.0, frequency=2.5, amplitude=0.5)
        assert classify_activity(features) == ActivityMode.RUNNING

    def test_walking_frequency(self) -> None:
        features = ActivityFeatures(variance=1.0, frequency=1.8, amplitude=0.5)
        assert classify_activity(features) == ActivityMode.WALKING

    def test_no_peaks_defaults_to_walking(self) -> None:
        assert classify_activity(ActivityFeatures(variance=0.5)) == ActivityMode.WALKING
        assert classify_activity(ActivityFeatures(variance=0.9)) == ActivityMode.WALKING


class TestParseMode(unittest.TestCase):
    def test_accepts_enum_and_strings(self) -> None:
        assert parse_mode(ActivityMode.RUNNING) is ActivityMode.RUNNING
        assert parse_mode("Walking") is ActivityMode.WALKING

    def test_rejects_unknown(self) -> None:
        with pytest.raises(ConfigurationError, match="Unknown activity mode"):
            parse_mode("cycling")


if __name__ == "__main__":
    unittest.main()
