"""Loading of walk datasets written by scripts/generate_pdr_walk_dataset.py.

Expected directory structure:
    data_dir/
    ├── time.txt            # (N,) timestamps, ms
    ├── accel.txt           # (N, 3) m/s^2
    ├── gyro.txt            # (N, 3) rad/s
    ├── magnetometer.txt    # (N, 3) uT, optional
    ├── step_times.txt      # (K,) ms, optional
    └── config.json         # optional
"""

import json
from pathlib import Path
from typing import Tuple, Union

import numpy as np

from indoorloc.sim.walk import WalkStream


def _load_vectors(path: Path, n: int) -> np.ndarray:
    arr = np.atleast_2d(np.loadtxt(path))
    if arr.shape != (n, 3):
        raise ValueError(f"{path.name}: expected shape ({n}, 3), got {arr.shape}")
    return arr


def load_walk_dataset(data_dir: Union[str, Path]) -> Tuple[WalkStream, dict]:
    """
    Load a walk dataset from disk.

    Args:
        data_dir: Path to the dataset directory.

    Returns:
        (stream, config); config is empty when config.json is absent.

    Raises:
        FileNotFoundError: If time.txt, accel.txt or gyro.txt is missing.
        ValueError: If the arrays disagree in length or shape.
    """
    data_dir = Path(data_dir)
    for name in ("time.txt", "accel.txt", "gyro.txt"):
        if not (data_dir / name).exists():
            raise FileNotFoundError(f"Required file not found: {data_dir / name}")

    t = np.atleast_1d(np.loadtxt(data_dir / "time.txt"))
    n = t.size
    accel = _load_vectors(data_dir / "accel.txt", n)
    gyro = _load_vectors(data_dir / "gyro.txt", n)

    mag_file = data_dir / "magnetometer.txt"
    mag = _load_vectors(mag_file, n) if mag_file.exists() else None

    steps_file = data_dir / "step_times.txt"
    steps = np.atleast_1d(np.loadtxt(steps_file)) if steps_file.exists() else np.array([])

    config = {}
    config_file = data_dir / "config.json"
    if config_file.exists():
        with open(config_file, "r", encoding="utf-8") as f:
            config = json.load(f)

    return WalkStream(t, accel, gyro, mag, steps), config
