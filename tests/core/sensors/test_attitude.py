"""
Unit tests for indoorloc/sensors/attitude.py (AttitudeTracker).

Tests cover:
    - Exact identity for a flat, motionless device
    - Gyroscope yaw integration and accelerometer tilt correction
    - Stability detection and automatic re-calibration gates
    - Forced re-calibration
    - Frame transforms and world projection errors

Run with: pytest tests/core/sensors/test_attitude.py -v
"""

import unittest

import numpy as np
import pytest

from indoorloc.config import AttitudeConfig
from indoorloc.coords.rotations import IDENTITY_QUAT, euler_to_quat, rotate_to_world
from indoorloc.errors import ProjectionError
from indoorloc.sensors.attitude import AttitudeTracker, madgwick_gradient
from indoorloc.sensors.types import Sample

FLAT = np.array([0.0, 0.0, 9.81])
ZERO = np.zeros(3)
MAG = np.array([20.0, 0.0, 40.0])


def feed(tracker, n, accel=FLAT, gyro=ZERO, mag=None, dt_ms=20.0, t0=0.0):
    """Push n identical samples; return the snapshots produced."""
    snapshots = []
    for i in range(n):
        snap = tracker.update(Sample(t0 + i * dt_ms, accel, gyro, mag=mag))
        if snap is not None:
            snapshots.append(snap)
    return snapshots


class TestFilter(unittest.TestCase):
    """Test suite for the quaternion filter."""

    def test_flat_device_stays_identity(self) -> None:
        """Zero rate and gravity on +z keep q exactly at identity."""
        tracker = AttitudeTracker()
        feed(tracker, 50)
        assert np.array_equal(tracker.q, IDENTITY_QUAT)
        assert tracker.initialized

    def test_gradient_vanishes_at_truth(self) -> None:
        """The objective gradient is zero when q explains the readings."""
        q = euler_to_quat(0.0, 0.0, 0.7)
        grad = madgwick_gradient(q, np.array([0.0, 0.0, 1.0]))
        np.testing.assert_allclose(grad, np.zeros(4), atol=1e-12)

        m = MAG / np.linalg.norm(MAG)
        grad = madgwick_gradient(IDENTITY_QUAT.copy(), np.array([0.0, 0.0, 1.0]), m)
        np.testing.assert_allclose(grad, np.zeros(4), atol=1e-12)

    def test_yaw_integration(self) -> None:
        """A steady yaw rate integrates into yaw."""
        tracker = AttitudeTracker()
        feed(tracker, 50, gyro=np.array([0.0, 0.0, 0.5]))
        # first sample uses the 20 ms default step: 50 · 0.02 s · 0.5 rad/s
        assert np.isclose(tracker.euler()[2], 0.5, atol=1e-2)
        assert np.isclose(np.linalg.norm(tracker.q), 1.0, atol=1e-6)

    def test_tilt_converges(self) -> None:
        """The accelerometer term levels a tilted device."""
        tracker = AttitudeTracker()
        accel = np.array([0.0, 9.81 * np.sin(0.3), 9.81 * np.cos(0.3)])
        feed(tracker, 400, accel=accel)
        up = rotate_to_world(tracker.q, accel / np.linalg.norm(accel))
        np.testing.assert_allclose(up, [0.0, 0.0, 1.0], atol=0.02)

    def test_invalid_sample_ignored(self) -> None:
        """Implausible samples leave the tracker untouched."""
        tracker = AttitudeTracker()
        assert tracker.update(Sample(0.0, [0.0, 0.0, 500.0], ZERO)) is None
        assert not tracker.initialized
        assert np.array_equal(tracker.q, IDENTITY_QUAT)

    def test_stale_and_duplicate_samples_ignored(self) -> None:
        """Samples not newer than the last one neither rotate q nor rewind time."""
        tracker = AttitudeTracker()
        feed(tracker, 10, t0=1000.0)
        q = tracker.q
        spin = np.array([0.0, 0.0, 5.0])
        assert tracker.update(Sample(1180.0, FLAT, spin)) is None
        assert tracker.update(Sample(500.0, FLAT, spin)) is None
        np.testing.assert_array_equal(tracker.q, q)
        # the next sample integrates over the 20 ms since t=1180
        tracker.update(Sample(1200.0, FLAT, spin))
        assert np.isclose(tracker.euler()[2], 0.1, atol=1e-3)

    def test_configure_keeps_attitude(self) -> None:
        tracker = AttitudeTracker()
        feed(tracker, 20, gyro=np.array([0.0, 0.0, 0.5]))
        q = tracker.q
        tracker.configure(AttitudeConfig(beta=0.2))
        np.testing.assert_array_equal(tracker.q, q)
        assert tracker.config.beta == 0.2


class TestStabilityAndRecalibration(unittest.TestCase):
    """Test suite for the stability gate and snapshots."""

    def test_automatic_recalibration(self) -> None:
        """2 s of stillness with a trusted magnetometer captures one snapshot."""
        tracker = AttitudeTracker()
        with self.assertLogs("indoorloc.sensors.attitude", level="INFO") as cm:
            snapshots = feed(tracker, 125, mag=MAG)
        assert len(snapshots) == 1
        # stable from the 10th sample (t=180), snapshot 2000 ms later
        assert snapshots[0].t_ms == 2180.0
        assert snapshots[0].automatic
        np.testing.assert_allclose(snapshots[0].device_to_body, np.eye(3))
        np.testing.assert_allclose(snapshots[0].mean_gravity, FLAT)
        assert any("Automatic re-calibration" in line for line in cm.output)

        status = tracker.status()
        assert status.is_stable
        assert status.has_snapshot
        assert status.last_recalibration_ms == 2180.0
        assert status.magnetic_confidence > 0.5

    def test_no_recalibration_without_magnetometer(self) -> None:
        tracker = AttitudeTracker()
        assert feed(tracker, 150) == []
        assert tracker.status().is_stable

    def test_interval_between_snapshots(self) -> None:
        """A second snapshot waits for the re-calibration interval."""
        tracker = AttitudeTracker(AttitudeConfig(recalibration_interval_ms=1000.0))
        snapshots = feed(tracker, 200, mag=MAG)
        assert [s.t_ms for s in snapshots] == [2180.0, 3180.0]

    def test_motion_breaks_stability(self) -> None:
        tracker = AttitudeTracker()
        feed(tracker, 60)
        assert tracker.stability_duration_ms > 0.0
        tracker.update(Sample(1200.0, [0.0, 3.0, 14.0], [0.0, 0.5, 0.0]))
        assert not tracker.status().is_stable
        assert tracker.stability_duration_ms == 0.0

    def test_disabled_auto_recalibration(self) -> None:
        tracker = AttitudeTracker(AttitudeConfig(auto_recalibration_enabled=False))
        assert feed(tracker, 150, mag=MAG) == []


class TestForcedRecalibration(unittest.TestCase):
    """Test suite for force_recalibration()."""

    def test_relevels_and_keeps_yaw(self) -> None:
        tracker = AttitudeTracker()
        feed(tracker, 50, gyro=np.array([0.0, 0.0, 0.5]))
        yaw = tracker.euler()[2]
        accel = np.array([0.0, 9.81 * np.sin(0.2), 9.81 * np.cos(0.2)])
        snap = tracker.force_recalibration(accel, ZERO)
        assert snap is not None
        assert not snap.automatic
        assert np.isclose(tracker.euler()[0], 0.2)
        assert np.isclose(tracker.euler()[2], yaw)

    def test_rejects_bad_samples(self) -> None:
        tracker = AttitudeTracker()
        assert tracker.force_recalibration([0.0, 9.81], ZERO) is None
        assert tracker.force_recalibration([np.nan, 0.0, 9.81], ZERO) is None
        assert tracker.force_recalibration(ZERO, ZERO) is None
        assert tracker.snapshot is None


class TestTransforms(unittest.TestCase):
    """Test suite for body and world transforms."""

    def test_identity_without_snapshot(self) -> None:
        tracker = AttitudeTracker()
        v = np.array([1.0, 2.0, 3.0])
        np.testing.assert_array_equal(tracker.transform_acceleration(v), v)
        np.testing.assert_array_equal(tracker.transform_gyroscope(v), v)

    def test_body_transform_uses_snapshot(self) -> None:
        tracker = AttitudeTracker()
        feed(tracker, 50, gyro=np.array([0.0, 0.0, np.pi / 2]))
        tracker.force_recalibration(FLAT, ZERO)
        R = tracker.snapshot.device_to_body
        v = np.array([1.0, 0.0, 0.0])
        np.testing.assert_allclose(tracker.transform_acceleration(v), R @ v)

    def test_project_before_init_raises(self) -> None:
        with pytest.raises(ProjectionError, match="no orientation"):
            AttitudeTracker().project_to_world(FLAT)

    def test_project_bad_shape_raises(self) -> None:
        tracker = AttitudeTracker()
        feed(tracker, 1)
        with pytest.raises(ProjectionError, match="3-vector"):
            tracker.project_to_world([1.0, 2.0])
        np.testing.assert_allclose(tracker.project_to_world(FLAT), FLAT)

    def test_reset(self) -> None:
        tracker = AttitudeTracker()
        feed(tracker, 125, mag=MAG)
        tracker.reset()
        assert tracker.snapshot is None
        assert not tracker.initialized
        assert tracker.magnetic_confidence == 0.0


if __name__ == "__main__":
    unittest.main()
