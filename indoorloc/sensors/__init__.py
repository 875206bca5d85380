"""
Sensor processing for pedestrian localization.

This package contains the stream processors that turn inertial and magnetic
samples into attitude, steps, activity and heading:
    - types: Sample and event records, closed enumerations
    - attitude: quaternion complementary filter with re-calibration snapshots
    - environment: magnetometer confidence, barometric altitude
    - step_detection: magnitude and vertical step candidates
    - activity: stationary / walking / running classifier
    - constraints: ZUPT and physiological step guards
    - pdr: pedestrian dead-reckoning engine
    - orientation_buffer: heading history for batched pedometer steps
    - heading: heading filter and segment stabilizer
"""

from indoorloc.sensors.types import (
    ActivityFeatures,
    ActivityMode,
    AttitudeStatus,
    DetectionMethod,
    NativeStepBatch,
    Pose,
    RecalibrationSnapshot,
    Sample,
    StepEvent,
    StepSource,
)
from indoorloc.sensors.attitude import AttitudeTracker, madgwick_gradient
from indoorloc.sensors.environment import (
    BarometricAltimeter,
    MagneticConfidenceTracker,
    magnetic_confidence,
    pressure_to_altitude,
)
from indoorloc.sensors.step_detection import (
    Projected,
    ProjectionFallback,
    StepCandidate,
    VerticalStepDetector,
    magnitude_candidate,
    magnitude_signal,
    orientation_confidence,
    project_acceleration,
    remove_gravity,
)
from indoorloc.sensors.activity import classify_activity, compute_features, parse_mode, pitch_deg
from indoorloc.sensors.constraints import PhysiologicalGuard, ZuptDetector
from indoorloc.sensors.pdr import (
    PDRUpdate,
    PedestrianDeadReckoning,
    amplitude_factor,
    integrate_gyro_heading,
    pdr_step_update,
    smooth_step_length,
    target_step_length,
    threshold_multiplier,
)
from indoorloc.sensors.orientation_buffer import HybridOrientationBuffer
from indoorloc.sensors.heading import HeadingStabilizer

__all__ = [
    # Types
    "ActivityFeatures",
    "ActivityMode",
    "AttitudeStatus",
    "DetectionMethod",
    "NativeStepBatch",
    "Pose",
    "RecalibrationSnapshot",
    "Sample",
    "StepEvent",
    "StepSource",
    # Attitude
    "AttitudeTracker",
    "madgwick_gradient",
    # Environment
    "BarometricAltimeter",
    "MagneticConfidenceTracker",
    "magnetic_confidence",
    "pressure_to_altitude",
    # Step detection
    "Projected",
    "ProjectionFallback",
    "StepCandidate",
    "VerticalStepDetector",
    "magnitude_candidate",
    "magnitude_signal",
    "orientation_confidence",
    "project_acceleration",
    "remove_gravity",
    # Activity
    "classify_activity",
    "compute_features",
    "parse_mode",
    "pitch_deg",
    # Constraints
    "PhysiologicalGuard",
    "ZuptDetector",
    # PDR
    "PDRUpdate",
    "PedestrianDeadReckoning",
    "amplitude_factor",
    "integrate_gyro_heading",
    "pdr_step_update",
    "smooth_step_length",
    "target_step_length",
    "threshold_multiplier",
    # Heading
    "HybridOrientationBuffer",
    "HeadingStabilizer",
]
