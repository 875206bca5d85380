"""
Generate a synthetic 25 Hz pedestrian walk dataset.

The walk is written as plain text files that tools/replay_dataset.py (and
demos/example_pdr_pipeline.py) feed through the localization pipeline:

    time.txt            sample timestamps (ms)
    accel.txt           ax, ay, az (m/s^2), device frame
    gyro.txt            wx, wy, wz (rad/s), device frame
    magnetometer.txt    mx, my, mz (uT), device frame (optional)
    step_times.txt      true step (peak) timestamps (ms)
    ground_truth_heading.txt  true yaw (rad)
    config.json         generation parameters

Presets:
    corridor    rectangular loop, 4 legs of 20 steps joined by 90 deg turns
    straight    a single straight leg of 20 steps at 600 ms
    running     a straight leg of 12 steps at 400 ms
"""

import argparse
import json
from pathlib import Path
from typing import Dict, Optional

import numpy as np
from tqdm import tqdm

from indoorloc.sim.walk import WalkStream, corridor_walk, pulse_walk

EARTH_FIELD_UT = (20.0, 0.0, 40.0)

PRESETS = ("corridor", "straight", "running")


def build_walk(preset: str, seed: int, accel_noise: float) -> WalkStream:
    """Synthesize the walk of one preset."""
    if preset == "corridor":
        return corridor_walk(legs=4, steps_per_leg=20, seed=seed, accel_noise=accel_noise)
    if preset == "straight":
        return pulse_walk(20, step_interval_samples=15, amplitude=2.5, sway_rate=0.6)
    if preset == "running":
        return pulse_walk(12, step_interval_samples=10, amplitude=3.0, sway_rate=0.8)
    raise ValueError(f"Unknown preset '{preset}'. Choose from {PRESETS}")


def true_heading(walk: WalkStream) -> np.ndarray:
    """Yaw obtained by integrating the noiseless gyro z rate."""
    dt = np.diff(walk.t_ms, prepend=walk.t_ms[0]) / 1000.0
    return np.cumsum(walk.gyro[:, 2] * dt)


def magnetometer_readings(yaw: np.ndarray, field=EARTH_FIELD_UT) -> np.ndarray:
    """Device-frame field for a level handset with the given yaw."""
    fx, _, fz = field
    mag = np.zeros((yaw.size, 3))
    mag[:, 0] = fx * np.cos(yaw)
    mag[:, 1] = -fx * np.sin(yaw)
    mag[:, 2] = fz
    return mag


def add_gyro_errors(
    gyro: np.ndarray, noise: float, bias: float, rng: np.random.Generator
) -> np.ndarray:
    """White noise on every axis plus a constant bias on z."""
    out = gyro + rng.normal(0.0, noise, gyro.shape) if noise > 0 else gyro.copy()
    out[:, 2] += bias
    return out


def save_dataset(
    output_dir: Path,
    walk: WalkStream,
    gyro: np.ndarray,
    heading: np.ndarray,
    mag: Optional[np.ndarray],
    config: Dict,
) -> None:
    """Save dataset to disk."""
    output_dir.mkdir(parents=True, exist_ok=True)

    np.savetxt(output_dir / "time.txt", walk.t_ms, fmt="%.3f", header="time (ms)")
    np.savetxt(
        output_dir / "accel.txt",
        walk.accel,
        fmt="%.6f",
        header="ax (m/s^2), ay (m/s^2), az (m/s^2)",
    )
    np.savetxt(
        output_dir / "gyro.txt",
        gyro,
        fmt="%.6f",
        header="omega_x (rad/s), omega_y (rad/s), omega_z (rad/s)",
    )
    if mag is not None:
        np.savetxt(
            output_dir / "magnetometer.txt",
            mag,
            fmt="%.6f",
            header="mx (uT), my (uT), mz (uT)",
        )
    np.savetxt(
        output_dir / "step_times.txt",
        walk.step_times_ms,
        fmt="%.3f",
        header="step peak times (ms)",
    )
    np.savetxt(
        output_dir / "ground_truth_heading.txt",
        heading,
        fmt="%.6f",
        header="heading (rad)",
    )
    with open(output_dir / "config.json", "w") as f:
        json.dump(config, f, indent=2)

    print(f"  Saved dataset to: {output_dir}")
    print(f"    Samples: {len(walk.t_ms)}")
    print(f"    Steps: {len(walk.step_times_ms)}")


def generate_dataset(
    output_dir: str,
    preset: str = "corridor",
    accel_noise: float = 0.02,
    gyro_noise: float = 0.0,
    gyro_bias: float = 0.0,
    with_mag: bool = True,
    seed: int = 7,
) -> Dict:
    """
    Generate and save one walk dataset.

    Args:
        output_dir: Output directory path.
        preset: One of PRESETS.
        accel_noise: Accel noise std dev (m/s^2), corridor preset only.
        gyro_noise: Gyro noise std dev (rad/s).
        gyro_bias: Constant gyro z bias (rad/s).
        with_mag: Write magnetometer.txt.
        seed: Random seed.

    Returns:
        The config dictionary written to config.json.
    """
    rng = np.random.default_rng(seed)
    walk = build_walk(preset, seed, accel_noise)
    heading = true_heading(walk)
    gyro = add_gyro_errors(walk.gyro, gyro_noise, gyro_bias, rng)
    mag = magnetometer_readings(heading) if with_mag else None

    config = {
        "dataset": "pdr_walk",
        "preset": preset,
        "sample_rate_hz": 25.0,
        "num_samples": int(len(walk.t_ms)),
        "duration_ms": float(walk.t_ms[-1]),
        "num_steps": int(len(walk.step_times_ms)),
        "sensors": {
            "accel_noise_std_m_s2": accel_noise if preset == "corridor" else 0.0,
            "gyro_noise_std_rad_s": gyro_noise,
            "gyro_bias_rad_s": gyro_bias,
            "magnetometer": with_mag,
            "earth_field_ut": list(EARTH_FIELD_UT) if with_mag else None,
        },
        "seed": seed,
    }
    save_dataset(Path(output_dir), walk, gyro, heading, mag, config)
    return config


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Generate a synthetic pedestrian walk dataset",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Corridor loop with magnetometer
  python scripts/generate_pdr_walk_dataset.py --preset corridor

  # Running burst with a biased gyro
  python scripts/generate_pdr_walk_dataset.py --preset running --gyro-bias 0.01

  # Every preset under data/sim/
  python scripts/generate_pdr_walk_dataset.py --all
        """,
    )
    parser.add_argument("--preset", choices=PRESETS, default="corridor",
                        help="Walk to synthesize (default: corridor)")
    parser.add_argument("--all", action="store_true", help="Generate every preset")
    parser.add_argument("--output", type=str, default=None,
                        help="Output directory (default: data/sim/pdr_<preset>)")

    noise_group = parser.add_argument_group("Sensor Parameters")
    noise_group.add_argument("--accel-noise", type=float, default=0.02,
                             help="Accel noise std dev in m/s^2 (default: 0.02)")
    noise_group.add_argument("--gyro-noise", type=float, default=0.0,
                             help="Gyro noise std dev in rad/s (default: 0.0)")
    noise_group.add_argument("--gyro-bias", type=float, default=0.0,
                             help="Gyro z bias in rad/s (default: 0.0)")
    noise_group.add_argument("--no-mag", action="store_true", help="Omit the magnetometer")
    parser.add_argument("--seed", type=int, default=7, help="Random seed (default: 7)")

    args = parser.parse_args()

    presets = PRESETS if args.all else (args.preset,)
    for preset in tqdm(presets, desc="Generating datasets", unit="dataset", disable=len(presets) == 1):
        output = args.output if (args.output and not args.all) else f"data/sim/pdr_{preset}"
        generate_dataset(
            output,
            preset=preset,
            accel_noise=args.accel_noise,
            gyro_noise=args.gyro_noise,
            gyro_bias=args.gyro_bias,
            with_mag=not args.no_mag,
            seed=args.seed,
        )


if __name__ == "__main__":
    main()
