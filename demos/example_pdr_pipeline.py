"""
Example: real-time pedestrian localization on a corridor walk.

Pushes a 25 Hz walk sample by sample through the Pipeline and plots:
    - the dead-reckoned trajectory with every detected step
    - the dynamic acceleration magnitude |a| - g with true and detected steps
    - the PDR yaw against the true heading, with the activity mode

Can run with:
    - Pre-generated dataset: python demos/example_pdr_pipeline.py --data pdr_corridor
    - Inline data (default): python demos/example_pdr_pipeline.py
"""

import argparse
from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np

from indoorloc.fusion.events import ModeChanged, StepDetected
from indoorloc.fusion.pipeline import Pipeline
from indoorloc.sim.dataset import load_walk_dataset
from indoorloc.sim.walk import GRAVITY, WalkStream, corridor_walk


def run_pipeline(stream: WalkStream, height: float) -> dict:
    """Replay the stream and record the per-sample outputs."""
    pipeline = Pipeline()
    pipeline.initialize(height)

    n = len(stream.t_ms)
    yaw = np.zeros(n)
    xy = np.zeros((n, 2))
    steps, modes = [], []
    for i, sample in enumerate(stream.samples()):
        for event in pipeline.push(sample):
            if isinstance(event, StepDetected):
                steps.append(event.step)
            elif isinstance(event, ModeChanged):
                modes.append((event.t_ms, event.mode))
        pose = pipeline.pose()
        yaw[i] = pose.yaw
        xy[i] = pose.x, pose.y

    return {"pipeline": pipeline, "yaw": yaw, "xy": xy, "steps": steps, "modes": modes}


def plot_results(stream: WalkStream, result: dict, figs_dir: Path, show: bool = True) -> None:
    """Trajectory, step signal and heading figures."""
    figs_dir.mkdir(parents=True, exist_ok=True)
    t_s = stream.t_ms / 1000.0
    steps = result["steps"]
    step_t = np.array([s.t_ms for s in steps]) / 1000.0
    step_xy = np.cumsum([[s.dx, s.dy] for s in steps], axis=0) if steps else np.zeros((0, 2))

    # Figure 1: Trajectory
    fig1, ax = plt.subplots(figsize=(10, 8))
    ax.plot(result["xy"][:, 0], result["xy"][:, 1], "b-", linewidth=2, label="PDR")
    ax.scatter(step_xy[:, 0], step_xy[:, 1], c="r", s=20, label="Steps", zorder=4)
    ax.scatter(0, 0, c="g", s=150, marker="o", label="Start", zorder=5)
    ax.set_xlabel("x (north) [m]", fontsize=12)
    ax.set_ylabel("y [m]", fontsize=12)
    ax.set_title("Pipeline Example: Dead-Reckoned Trajectory", fontsize=14, fontweight="bold")
    ax.legend(fontsize=11)
    ax.grid(True, alpha=0.3)
    ax.axis("equal")
    plt.tight_layout()
    fig1.savefig(figs_dir / "pipeline_trajectory.svg", dpi=300, bbox_inches="tight")
    print(f"  [OK] Saved: {figs_dir / 'pipeline_trajectory.svg'}")

    # Figure 2: Step signal and heading
    fig2, (ax1, ax2) = plt.subplots(2, 1, figsize=(12, 8), sharex=True)
    dynamic = np.linalg.norm(stream.accel, axis=1) - GRAVITY
    ax1.plot(t_s, dynamic, "k-", linewidth=1, label="|a| - g")
    for k, ts in enumerate(stream.step_times_ms / 1000.0):
        ax1.axvline(ts, color="g", alpha=0.3, linewidth=1, label="True step" if k == 0 else None)
    if step_t.size:
        idx = np.searchsorted(stream.t_ms, step_t * 1000.0)
        ax1.plot(step_t, dynamic[np.clip(idx, 0, len(dynamic) - 1)], "rv", label="Detected step")
    ax1.set_ylabel("Dynamic accel [m/s^2]", fontsize=12)
    ax1.set_title("Pipeline Example: Step Detection", fontsize=14, fontweight="bold")
    ax1.legend(fontsize=10)
    ax1.grid(True, alpha=0.3)

    dt = np.diff(stream.t_ms, prepend=stream.t_ms[0]) / 1000.0
    true_yaw = np.cumsum(stream.gyro[:, 2] * dt)
    ax2.plot(t_s, np.rad2deg(np.unwrap(result["yaw"])), "b-", linewidth=2, label="PDR yaw")
    ax2.plot(t_s, np.rad2deg(true_yaw), "k--", linewidth=1.5, label="Integrated gyro z")
    for t_ms, mode in result["modes"]:
        ax2.axvline(t_ms / 1000.0, color="m", alpha=0.4, linestyle=":")
        ax2.text(t_ms / 1000.0, ax2.get_ylim()[1], mode.value, rotation=90, fontsize=8,
                 va="top", color="m")
    ax2.set_xlabel("Time [s]", fontsize=12)
    ax2.set_ylabel("Heading [deg]", fontsize=12)
    ax2.legend(fontsize=10)
    ax2.grid(True, alpha=0.3)
    ax2.set_xlim([0, t_s[-1]])
    plt.tight_layout()
    fig2.savefig(figs_dir / "pipeline_signals.svg", dpi=300, bbox_inches="tight")
    print(f"  [OK] Saved: {figs_dir / 'pipeline_signals.svg'}")

    if show:
        plt.show()
    plt.close("all")


def main():
    """Main execution with CLI argument parsing."""
    parser = argparse.ArgumentParser(
        description="Real-time pedestrian localization example",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with an inline corridor walk (default)
  python demos/example_pdr_pipeline.py

  # Run with a dataset written by scripts/generate_pdr_walk_dataset.py
  python demos/example_pdr_pipeline.py --data pdr_corridor --height 1.80
        """,
    )
    parser.add_argument("--data", type=str, default=None,
                        help="Dataset name under data/sim or a directory path")
    parser.add_argument("--height", type=float, default=1.75,
                        help="Pedestrian height in meters (default: 1.75)")
    parser.add_argument("--figs", type=str, default="demos/figs",
                        help="Output directory for figures (default: demos/figs)")
    parser.add_argument("--no-show", action="store_true", help="Save figures without showing them")
    args = parser.parse_args()

    if args.data:
        data_path = Path(args.data)
        if not data_path.exists():
            data_path = Path("data/sim") / args.data
        if not data_path.exists():
            print(f"Error: Dataset not found at '{args.data}' or 'data/sim/{args.data}'")
            return
        stream, _ = load_walk_dataset(data_path)
    else:
        stream = corridor_walk()

    print("\n" + "=" * 70)
    print("Real-time pedestrian localization")
    print("=" * 70)
    result = run_pipeline(stream, args.height)
    pipeline = result["pipeline"]
    pose = pipeline.pose()
    print(f"  Samples: {len(stream.t_ms)}")
    print(f"  Steps: {pipeline.step_count} detected / {len(stream.step_times_ms)} true")
    print(f"  Distance: {pipeline.pdr.total_distance:.2f} m")
    print(f"  Final pose: x={pose.x:.2f} m  y={pose.y:.2f} m  yaw={np.degrees(pose.yaw):.1f} deg")

    plot_results(stream, result, Path(args.figs), show=not args.no_show)


if __name__ == "__main__":
    main()
