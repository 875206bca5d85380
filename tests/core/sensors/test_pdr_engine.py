"""
Unit tests for indoorloc/sensors/pdr.py (PedestrianDeadReckoning).

Tests cover:
    - Step-length model and position update
    - Gyro heading integration
    - Lifecycle: initialize, reset, manual mode
    - Per-sample processing: classification, sample rate, ZUPT damping,
      barometric altitude, step timing gate, native steps
    - Vertical-path detection: interval gates, confidence, step length

Run with: pytest tests/core/sensors/test_pdr_engine.py -v
"""

import unittest

import numpy as np
import pytest

from indoorloc.errors import ConfigurationError
from indoorloc.sensors.attitude import AttitudeTracker
from indoorloc.sensors.pdr import (
    PedestrianDeadReckoning,
    amplitude_factor,
    integrate_gyro_heading,
    pdr_step_update,
    smooth_step_length,
    target_step_length,
    threshold_multiplier,
)
from indoorloc.sensors.environment import pressure_to_altitude
from indoorloc.sensors.types import ActivityMode, DetectionMethod, Sample, StepSource
from indoorloc.sim.walk import add_pulses, pulse_walk, quiet_baseline, to_samples

FLAT = [0.0, 0.0, 9.81]
ZERO = [0.0, 0.0, 0.0]


def flat_samples(n, dt_ms=40.0, t0=0.0, gyro=ZERO):
    return [Sample(t0 + i * dt_ms, FLAT, gyro) for i in range(n)]


class TestStepModel(unittest.TestCase):
    """Test suite for the step-length and position model."""

    def test_threshold_multiplier(self) -> None:
        assert threshold_multiplier(ActivityMode.WALKING, 10) == pytest.approx(1.1)
        assert threshold_multiplier(ActivityMode.RUNNING, 10) == pytest.approx(1.2)
        assert threshold_multiplier(ActivityMode.WALKING, 3) == pytest.approx(0.99)

    def test_amplitude_factor(self) -> None:
        assert amplitude_factor(0.5) == pytest.approx(0.7)
        assert amplitude_factor(1.75) == pytest.approx(0.9)
        assert amplitude_factor(3.0) == pytest.approx(1.1)
        assert amplitude_factor(10.0) == pytest.approx(1.1)
        assert amplitude_factor(0.0) == pytest.approx(0.7)

    def test_target_step_length(self) -> None:
        assert target_step_length(0.7, 3.0, ActivityMode.WALKING) == pytest.approx(0.77)
        assert target_step_length(0.7, 3.0, ActivityMode.RUNNING) == pytest.approx(0.924)

    def test_smoothing_and_bounds(self) -> None:
        assert smooth_step_length(0.7, 1.0, 0.05) == pytest.approx(0.715)
        assert smooth_step_length(1.2, 5.0, 0.5) == 1.2
        assert smooth_step_length(0.3, 0.0, 0.5) == 0.3

    def test_position_update(self) -> None:
        """p_k = p_{k-1} + L·[cos ψ, sin ψ]."""
        p = pdr_step_update(np.array([1.0, 2.0]), 0.7, np.pi / 2)
        np.testing.assert_allclose(p, [1.0, 2.7], atol=1e-12)

    def test_position_update_validation(self) -> None:
        with pytest.raises(ValueError, match="non-negative"):
            pdr_step_update(np.zeros(2), -0.1, 0.0)
        with pytest.raises(ValueError, match="shape"):
            pdr_step_update(np.zeros(3), 0.7, 0.0)

    def test_heading_integration(self) -> None:
        assert integrate_gyro_heading(0.0, 0.5, 0.1) == pytest.approx(0.05)
        # rate clipped to ±10 rad/s
        assert integrate_gyro_heading(0.0, 50.0, 0.01) == pytest.approx(0.1)
        # wraps across ±π
        assert integrate_gyro_heading(np.pi - 0.01, 1.0, 0.02) == pytest.approx(-np.pi + 0.01)
        with pytest.raises(ValueError, match="dt"):
            integrate_gyro_heading(0.0, 0.0, -1.0)


class TestLifecycle(unittest.TestCase):
    """Test suite for initialization, reset and mode control."""

    def test_default_step_length(self) -> None:
        pdr = PedestrianDeadReckoning()
        assert pdr.step_length == pytest.approx(0.7)
        assert pdr.mode == ActivityMode.WALKING

    def test_initialize_from_height(self) -> None:
        pdr = PedestrianDeadReckoning()
        pdr.initialize(user_height=1.75)
        assert pdr.step_length == pytest.approx(0.7)
        pdr.initialize(user_height=4.0)
        assert pdr.step_length == pytest.approx(1.2)

    def test_initialize_rejects_bad_height(self) -> None:
        with pytest.raises(ValueError, match="user_height"):
            PedestrianDeadReckoning().initialize(user_height=0.0)

    def test_reset_places_pose(self) -> None:
        pdr = PedestrianDeadReckoning()
        for s in flat_samples(40):
            pdr.process(s)
        pdr.reset(position=[3.0, 4.0], yaw=4.0)
        np.testing.assert_allclose(pdr.position, [3.0, 4.0, 0.0])
        assert pdr.yaw == pytest.approx(4.0 - 2 * np.pi)
        assert pdr.step_count == 0
        assert all(v == 0 for v in pdr.buffer_lengths().values())

    def test_reset_is_idempotent(self) -> None:
        pdr = PedestrianDeadReckoning()
        for s in pulse_walk(3).samples():
            pdr.process(s)
        pdr.reset()
        once = pdr.state()
        pdr.reset()
        twice = pdr.state()
        np.testing.assert_array_equal(once["position"], twice["position"])
        assert once["step_count"] == twice["step_count"] == 0
        assert once["mode"] == twice["mode"]
        assert pdr.last_detection_path is None

    def test_manual_mode(self) -> None:
        pdr = PedestrianDeadReckoning()
        assert pdr.set_manual_mode("running")
        assert not pdr.set_manual_mode(ActivityMode.RUNNING)
        assert not pdr.auto_classification
        # the classifier is suspended: a flat window stays "running"
        for s in flat_samples(40):
            assert not pdr.process(s).mode_changed
        assert pdr.mode == ActivityMode.RUNNING
        pdr.set_auto_classification(True)
        assert pdr.auto_classification

    def test_manual_mode_rejects_unknown(self) -> None:
        with pytest.raises(ConfigurationError):
            PedestrianDeadReckoning().set_manual_mode("swimming")


class TestProcessing(unittest.TestCase):
    """Test suite for PedestrianDeadReckoning.process()."""

    def test_classifies_once_window_is_full(self) -> None:
        """A flat window turns stationary on its 30th sample."""
        pdr = PedestrianDeadReckoning()
        updates = [pdr.process(s) for s in flat_samples(35)]
        changed = [i for i, u in enumerate(updates) if u.mode_changed]
        assert changed == [29]
        assert updates[29].previous_mode == ActivityMode.WALKING
        assert pdr.mode == ActivityMode.STATIONARY
        assert pdr.step_count == 0

    def test_magnitude_only_without_tracker(self) -> None:
        pdr = PedestrianDeadReckoning()
        for s in flat_samples(25):
            pdr.process(s)
        assert pdr.last_detection_path == DetectionMethod.MAGNITUDE_ONLY
        assert not pdr.state()["vertical_detection"]["enabled"]

    def test_yaw_integration(self) -> None:
        pdr = PedestrianDeadReckoning()
        for s in flat_samples(26, gyro=[0.0, 0.0, 0.5]):
            pdr.process(s)
        # 25 intervals of 40 ms
        assert pdr.yaw == pytest.approx(0.5)

    def test_yaw_interval_capped(self) -> None:
        """A gap in the stream integrates at most 100 ms of rate."""
        pdr = PedestrianDeadReckoning()
        pdr.process(Sample(0.0, FLAT, [0.0, 0.0, 1.0]))
        pdr.process(Sample(1000.0, FLAT, [0.0, 0.0, 1.0]))
        assert pdr.yaw == pytest.approx(0.1)

    def test_adaptive_sample_rate(self) -> None:
        pdr = PedestrianDeadReckoning()
        pdr.process(Sample(0.0, FLAT, ZERO))
        assert pdr.sample_rate == 25.0
        pdr.process(Sample(40.0, [0.0, 0.0, 13.0], ZERO))
        assert pdr.sample_rate == 100.0

    def test_zupt_damps_velocity(self) -> None:
        """Velocity is scaled by 0.1 once the device has been quiet 300 ms."""
        pdr = PedestrianDeadReckoning()
        pdr.set_manual_mode(ActivityMode.WALKING)
        pdr.velocity = np.ones(3)
        for s in flat_samples(13):
            pdr.process(s)
        np.testing.assert_allclose(pdr.velocity, np.full(3, 0.1))
        assert pdr.state()["zupt_active"]

    def test_barometric_altitude(self) -> None:
        pdr = PedestrianDeadReckoning()
        pdr.process(Sample(0.0, FLAT, ZERO, pressure_hpa=1013.25))
        update = pdr.process(Sample(40.0, FLAT, ZERO, pressure_hpa=1013.20))
        assert update.pose_changed
        assert pdr.position[2] == pytest.approx(pressure_to_altitude(1013.20))
        pdr.process(Sample(80.0, FLAT, ZERO, pressure_hpa=1000.0))
        assert pdr.position[2] == pytest.approx(pressure_to_altitude(1013.20))

    def test_attitude_angles(self) -> None:
        pdr = PedestrianDeadReckoning()
        g = 9.81
        pdr.process(Sample(0.0, [0.0, g * np.sin(0.2), g * np.cos(0.2)], ZERO))
        assert pdr.roll == pytest.approx(0.2)
        assert pdr.pitch == pytest.approx(0.0)

    def test_minimum_step_interval(self) -> None:
        """Walking pulses 400 ms apart: every other one is inside the 600 ms gate."""
        pdr = PedestrianDeadReckoning()
        pdr.set_manual_mode(ActivityMode.WALKING)
        walk = pulse_walk(4, step_interval_samples=10, amplitude=3.0)
        steps = [u.step for u in (pdr.process(s) for s in walk.samples()) if u.step]
        assert [s.t_ms for s in steps] == [2000.0, 2800.0]
        assert all(s.source == StepSource.MAGNITUDE for s in steps)
        assert pdr.step_count == 2

    def test_interval_gate_uses_current_mode(self) -> None:
        """After a switch to running, 480 ms clears the 400 ms running gate."""
        pdr = PedestrianDeadReckoning()
        pdr.set_manual_mode(ActivityMode.WALKING)
        t, accel, gyro, _ = quiet_baseline(110)
        accel = add_pulses(accel, [50, 65, 77], 3.0)
        steps = []
        for i, s in enumerate(to_samples(t, accel, gyro)):
            if i == 70:
                pdr.set_manual_mode(ActivityMode.RUNNING)
            update = pdr.process(s)
            if update.step is not None:
                steps.append(update.step.t_ms)
        assert steps == [2000.0, 2600.0, 3080.0]

    def test_external_step(self) -> None:
        pdr = PedestrianDeadReckoning()
        step = pdr.apply_external_step(100.0, 0.8, np.pi / 2, confidence=0.5)
        assert step.index == 1
        assert step.source == StepSource.NATIVE
        np.testing.assert_allclose(pdr.position[:2], [0.0, 0.8], atol=1e-12)
        assert pdr.pose().confidence == 0.5

    def test_state_snapshot(self) -> None:
        pdr = PedestrianDeadReckoning()
        state = pdr.state()
        for key in ("position", "orientation", "velocity", "mode", "step_count",
                    "step_length", "total_distance", "vertical_detection", "physiological"):
            assert key in state
        assert state["physiological"]["max_allowed_frequency"] == 4.0


def run_with_tracker(pdr, walk):
    """Feed a walk through an attached tracker; return (step, orientation confidence) pairs."""
    tracker = AttitudeTracker()
    pdr.set_attitude_tracker(tracker)
    steps = []
    for s in walk.samples():
        tracker.update(s)
        update = pdr.process(s, tracker.status())
        if update.step is not None:
            steps.append((update.step, pdr.last_orientation_confidence))
    return steps


class TestVerticalDetection(unittest.TestCase):
    """Test suite for steps detected on the world-frame vertical."""

    def test_walking_steps(self) -> None:
        """A slow yaw drift moves q off identity, so every step is vertical."""
        pdr = PedestrianDeadReckoning()
        pdr.set_manual_mode(ActivityMode.WALKING)
        walk = pulse_walk(5, yaw_rate=0.05)
        steps = run_with_tracker(pdr, walk)
        assert [s.t_ms for s, _ in steps] == list(walk.step_times_ms)
        assert pdr.last_detection_path == DetectionMethod.VERTICAL_PROJECTION
        for step, confidence in steps:
            assert step.source == StepSource.VERTICAL
            assert step.confidence == confidence
            assert confidence >= 0.3
        # a ~0.22 g peak is ~2.1 m/s²; read as 0.22 m/s² it would give L < 0.69
        assert 0.695 < steps[0][0].length_m < 0.7

    def test_walking_interval_gate(self) -> None:
        """Pulses 300 ms apart: the 400 ms walking gate drops every other one."""
        pdr = PedestrianDeadReckoning()
        pdr.set_manual_mode(ActivityMode.WALKING)
        walk = pulse_walk(5, rate_hz=50.0, yaw_rate=0.05)
        steps = run_with_tracker(pdr, walk)
        assert [s.t_ms for s, _ in steps] == [1000.0, 1600.0, 2200.0]
        assert all(s.source == StepSource.VERTICAL for s, _ in steps)

    def test_running_interval_gate(self) -> None:
        """The 250 ms running gate accepts pulses 300 ms apart."""
        pdr = PedestrianDeadReckoning()
        pdr.set_manual_mode(ActivityMode.RUNNING)
        walk = pulse_walk(5, rate_hz=50.0, yaw_rate=0.05)
        steps = run_with_tracker(pdr, walk)
        assert [s.t_ms for s, _ in steps] == [1000.0, 1300.0, 1600.0, 1900.0, 2200.0]
        assert all(s.source == StepSource.VERTICAL for s, _ in steps)


if __name__ == "__main__":
    unittest.main()
