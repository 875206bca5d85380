"""
Deterministic synthetic sensor streams for pedestrian walks.

The generators build 25 Hz (by default) sample streams from simple parts:
    - a quiet baseline: the handset lies flat, accel = (0, 0, g)
    - step pulses: three-sample bumps [0.5, 1, 0.5]·A added along device z
    - optional gyroscope sway around each pulse and a constant yaw rate
    - a heading ramp for feeding the orientation buffer

Timestamps are exact multiples of the sample period so that results are
reproducible sample for sample. Noise, when requested, comes from a seeded
numpy Generator.
"""

from typing import List, NamedTuple, Optional, Sequence, Tuple

import numpy as np

from indoorloc.sensors.types import Sample

GRAVITY = 9.81
PULSE_SHAPE = (0.5, 1.0, 0.5)


class WalkStream(NamedTuple):
    """Sample arrays of a synthetic walk plus the true step times."""

    t_ms: np.ndarray
    accel: np.ndarray
    gyro: np.ndarray
    mag: Optional[np.ndarray]
    step_times_ms: np.ndarray

    def samples(self) -> List[Sample]:
        return to_samples(self.t_ms, self.accel, self.gyro, self.mag)


def to_samples(
    t_ms: np.ndarray,
    accel: np.ndarray,
    gyro: np.ndarray,
    mag: Optional[np.ndarray] = None,
    pressure_hpa: Optional[np.ndarray] = None,
) -> List[Sample]:
    """Zip sample arrays into Sample records."""
    n = len(t_ms)
    return [
        Sample(
            t_ms[i],
            accel[i],
            gyro[i],
            None if mag is None else mag[i],
            None if pressure_hpa is None else pressure_hpa[i],
        )
        for i in range(n)
    ]


def quiet_baseline(
    n: int,
    rate_hz: float = 25.0,
    t0_ms: float = 0.0,
    accel_noise: float = 0.0,
    gyro_noise: float = 0.0,
    mag: Optional[Sequence[float]] = None,
    seed: Optional[int] = None,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray, Optional[np.ndarray]]:
    """
    Stationary handset lying flat.

    Args:
        n: Number of samples.
        rate_hz: Sample rate.
        t0_ms: First timestamp.
        accel_noise: Std of white noise added to every accel axis, m/s².
        gyro_noise: Std of white noise added to every gyro axis, rad/s.
        mag: Constant magnetic field in µT, or None for no magnetometer.
        seed: Seed for the noise generator.

    Returns:
        (t_ms, accel, gyro, mag) arrays.
    """
    rng = np.random.default_rng(seed)
    period = 1000.0 / rate_hz
    t = t0_ms + np.arange(n) * period
    accel = np.tile([0.0, 0.0, GRAVITY], (n, 1))
    gyro = np.zeros((n, 3))
    if accel_noise > 0:
        accel = accel + rng.normal(0.0, accel_noise, size=(n, 3))
    if gyro_noise > 0:
        gyro = gyro + rng.normal(0.0, gyro_noise, size=(n, 3))
    mag_arr = None if mag is None else np.tile(np.asarray(mag, dtype=float), (n, 1))
    return t, accel, gyro, mag_arr


def add_pulses(
    accel: np.ndarray,
    peak_indices: Sequence[int],
    amplitude: float,
    axis: int = 2,
    shape: Sequence[float] = PULSE_SHAPE,
) -> np.ndarray:
    """Add one pulse centred on each peak index; returns a new array."""
    out = np.array(accel, dtype=float, copy=True)
    half = len(shape) // 2
    for i in peak_indices:
        for k, w in enumerate(shape):
            j = i + k - half
            if 0 <= j < out.shape[0]:
                out[j, axis] += w * amplitude
    return out


def pulse_walk(
    num_steps: int,
    step_interval_samples: int = 15,
    amplitude: float = 2.5,
    lead_in: int = 50,
    tail: int = 50,
    rate_hz: float = 25.0,
    sway_rate: float = 0.0,
    yaw_rate: float = 0.0,
    mag: Optional[Sequence[float]] = None,
) -> WalkStream:
    """
    Quiet lead-in, a regular train of step pulses, quiet tail.

    Args:
        num_steps: Number of pulses.
        step_interval_samples: Samples between pulse peaks (15 -> 600 ms at 25 Hz).
        amplitude: Pulse peak in m/s².
        lead_in: Quiet samples before the first peak.
        tail: Quiet samples after the last peak.
        rate_hz: Sample rate.
        sway_rate: Gyro x rate (rad/s) on the three pulse samples, 0 for none.
        yaw_rate: Constant gyro z rate over the whole stream, rad/s.
        mag: Constant magnetic field, or None.

    Returns:
        WalkStream; step_times_ms holds the peak timestamps.
    """
    peaks = [lead_in + k * step_interval_samples for k in range(num_steps)]
    n = (peaks[-1] if peaks else lead_in) + tail + 1
    t, accel, gyro, mag_arr = quiet_baseline(n, rate_hz=rate_hz, mag=mag)
    accel = add_pulses(accel, peaks, amplitude)
    if sway_rate:
        gyro = add_pulses(gyro, peaks, sway_rate, axis=0, shape=(1.0, 1.0, 1.0))
    if yaw_rate:
        gyro[:, 2] += yaw_rate
    return WalkStream(t, accel, gyro, mag_arr, t[peaks] if peaks else np.array([]))


def corridor_walk(
    legs: int = 4,
    steps_per_leg: int = 20,
    step_interval_samples: int = 15,
    amplitude: float = 2.5,
    turn_samples: int = 25,
    rate_hz: float = 25.0,
    seed: Optional[int] = 7,
    accel_noise: float = 0.02,
) -> WalkStream:
    """
    Rectangular corridor loop: straight legs joined by 90° left turns.

    Each turn is a constant yaw rate over ``turn_samples`` samples while the
    walker stands still. Step pulses carry a small gyro sway so that gyro
    confirmation passes after the warm-up.
    """
    rng = np.random.default_rng(seed)
    period_s = 1.0 / rate_hz
    parts_a, parts_g, steps = [], [], []
    offset = 0
    for leg in range(legs):
        leg_stream = pulse_walk(
            steps_per_leg,
            step_interval_samples=step_interval_samples,
            amplitude=amplitude,
            lead_in=25 if leg == 0 else 10,
            tail=10,
            rate_hz=rate_hz,
            sway_rate=0.6,
        )
        n = len(leg_stream.t_ms)
        parts_a.append(leg_stream.accel)
        parts_g.append(leg_stream.gyro)
        steps.extend(leg_stream.step_times_ms + offset * 1000.0 * period_s)
        offset += n
        if leg < legs - 1:
            turn_gyro = np.zeros((turn_samples, 3))
            turn_gyro[:, 2] = (np.pi / 2) / (turn_samples * period_s)
            parts_a.append(np.tile([0.0, 0.0, GRAVITY], (turn_samples, 1)))
            parts_g.append(turn_gyro)
            offset += turn_samples
    accel = np.vstack(parts_a)
    gyro = np.vstack(parts_g)
    accel = accel + rng.normal(0.0, accel_noise, size=accel.shape)
    t = np.arange(accel.shape[0]) * 1000.0 * period_s
    return WalkStream(t, accel, gyro, None, np.asarray(steps))


def heading_ramp(
    t_start_ms: float,
    t_end_ms: float,
    heading_start_deg: float,
    heading_end_deg: float,
    rate_hz: float = 10.0,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Linear heading ramp sampled at rate_hz, both ends included.

    Returns:
        (t_ms, yaw_rad) arrays.
    """
    period = 1000.0 / rate_hz
    n = int(round((t_end_ms - t_start_ms) / period)) + 1
    t = t_start_ms + np.arange(n) * period
    frac = (t - t_start_ms) / (t_end_ms - t_start_ms)
    heading = heading_start_deg + frac * (heading_end_deg - heading_start_deg)
    return t, np.radians(heading)
