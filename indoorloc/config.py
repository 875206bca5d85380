"""
Configuration records for the localization pipeline.

All records are frozen dataclasses validated in ``__post_init__``; an invalid
value raises ConfigurationError (a ValueError) naming the offending field.
PipelineConfig.from_dict() accepts the nested record used by mobile
front-ends (camelCase keys such as ``stepDetectionWindow`` or
``attitude.stabilityDuration``) as well as snake_case keys, so a JSON file
written for either convention can be loaded with PipelineConfig.from_json().

Defaults:

    Option                                          Default
    ----------------------------------------------  --------
    stepDetectionWindow                             30 samples
    defaultStepLength                               0.7 m
    heightRatio                                     0.4
    zuptThreshold                                   0.1 m²/s⁴
    zuptDuration                                    300 ms
    verticalStepDetection.enabled                   True
    physiologicalConstraints.gyroConfirmationEnabled True
    attitude.beta                                   0.1
    attitude.stabilityAccThreshold                  0.2 m²/s⁴
    attitude.stabilityGyroThreshold                 0.1 rad/s
    attitude.stabilityDuration                      2000 ms
    attitude.magConfidenceThreshold                 0.5
    attitude.recalibrationInterval                  30000 ms
"""

import dataclasses
import json
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, Type, Union

from indoorloc.errors import ConfigurationError


def _require(condition: bool, message: str) -> None:
    if not condition:
        raise ConfigurationError(message)


def _require_positive(record: Any, *names: str) -> None:
    for name in names:
        value = getattr(record, name)
        _require(value > 0, f"{type(record).__name__}.{name} must be positive, got {value}")


def _require_non_negative(record: Any, *names: str) -> None:
    for name in names:
        value = getattr(record, name)
        _require(value >= 0, f"{type(record).__name__}.{name} must be non-negative, got {value}")


def _require_range(record: Any, name: str) -> None:
    low, high = getattr(record, name)
    _require(
        0 <= low <= high,
        f"{type(record).__name__}.{name} must satisfy 0 <= low <= high, got ({low}, {high})",
    )


@dataclass(frozen=True)
class SampleLimits:
    """Plausibility limits applied to every incoming sample."""

    gravity: float = 9.81
    max_accel_g: float = 10.0
    max_gyro_rad_s: float = 35.0

    def __post_init__(self) -> None:
        _require_positive(self, "gravity", "max_accel_g", "max_gyro_rad_s")

    @property
    def max_accel(self) -> float:
        """Largest admissible accelerometer norm in m/s²."""
        return self.max_accel_g * self.gravity


@dataclass(frozen=True)
class AttitudeConfig:
    """Complementary filter, stability gate and re-calibration settings."""

    beta: float = 0.1
    stability_acc_threshold: float = 0.2
    stability_gyro_threshold: float = 0.1
    stability_duration_ms: float = 2000.0
    stability_window_ms: float = 2000.0
    stability_min_samples: int = 10
    mag_confidence_threshold: float = 0.5
    mag_norm_threshold: float = 5.0
    mag_norm_range: Tuple[float, float] = (25.0, 65.0)
    mag_expected_norm: float = 50.0
    mag_history: int = 50
    mag_min_samples: int = 10
    auto_recalibration_enabled: bool = True
    recalibration_interval_ms: float = 30000.0
    min_dt_ms: float = 1.0
    max_dt_ms: float = 100.0
    default_dt_ms: float = 20.0

    def __post_init__(self) -> None:
        _require_positive(
            self,
            "beta",
            "stability_acc_threshold",
            "stability_gyro_threshold",
            "stability_window_ms",
            "stability_min_samples",
            "mag_norm_threshold",
            "mag_expected_norm",
            "mag_history",
            "mag_min_samples",
            "min_dt_ms",
            "max_dt_ms",
            "default_dt_ms",
        )
        _require_non_negative(self, "stability_duration_ms", "recalibration_interval_ms")
        _require(
            0.0 <= self.mag_confidence_threshold <= 1.0,
            f"AttitudeConfig.mag_confidence_threshold must be in [0, 1], "
            f"got {self.mag_confidence_threshold}",
        )
        _require_range(self, "mag_norm_range")
        _require(
            self.min_dt_ms <= self.max_dt_ms,
            f"AttitudeConfig.min_dt_ms ({self.min_dt_ms}) exceeds max_dt_ms ({self.max_dt_ms})",
        )
        _require(
            self.mag_min_samples <= self.mag_history,
            f"AttitudeConfig.mag_min_samples ({self.mag_min_samples}) exceeds "
            f"mag_history ({self.mag_history})",
        )


@dataclass(frozen=True)
class VerticalDetectionConfig:
    """World-frame vertical step detection. Peak bounds are in g."""

    enabled: bool = True
    min_vertical_peak: float = 0.2
    max_vertical_peak: float = 1.5
    threshold_sigma: float = 1.5
    orientation_confidence_threshold: float = 0.3
    fallback_to_magnitude: bool = True
    fallback_lockout_ms: float = 5000.0
    history_ms: float = 2000.0
    min_samples: int = 15
    analysis_window: int = 40
    min_step_interval_walking_ms: float = 400.0
    min_step_interval_running_ms: float = 250.0

    def __post_init__(self) -> None:
        _require_positive(
            self,
            "max_vertical_peak",
            "history_ms",
            "min_samples",
            "analysis_window",
        )
        _require_non_negative(
            self,
            "min_vertical_peak",
            "threshold_sigma",
            "fallback_lockout_ms",
            "min_step_interval_walking_ms",
            "min_step_interval_running_ms",
        )
        _require(
            self.min_vertical_peak <= self.max_vertical_peak,
            f"VerticalDetectionConfig.min_vertical_peak ({self.min_vertical_peak}) "
            f"exceeds max_vertical_peak ({self.max_vertical_peak})",
        )
        _require(
            0.0 <= self.orientation_confidence_threshold <= 1.0,
            "VerticalDetectionConfig.orientation_confidence_threshold must be in [0, 1], "
            f"got {self.orientation_confidence_threshold}",
        )


@dataclass(frozen=True)
class PhysiologicalConfig:
    """Step-rate caps and gyroscope confirmation applied after warm-up."""

    gyro_confirmation_enabled: bool = True
    gyro_confirmation_threshold: float = 0.3
    max_step_frequency_walking: float = 4.0
    max_step_frequency_running: float = 8.0
    max_step_frequency_stationary: float = 3.0
    warmup_steps: int = 10
    frequency_window_steps: int = 5
    step_history_ms: float = 10000.0
    gyro_buffer_size: int = 50
    gyro_confirmation_samples: int = 10
    gyro_min_samples: int = 5

    def __post_init__(self) -> None:
        _require_positive(
            self,
            "gyro_confirmation_threshold",
            "max_step_frequency_walking",
            "max_step_frequency_running",
            "max_step_frequency_stationary",
            "step_history_ms",
            "gyro_buffer_size",
            "gyro_confirmation_samples",
        )
        _require_non_negative(self, "warmup_steps", "gyro_min_samples")
        _require(
            self.frequency_window_steps >= 2,
            "PhysiologicalConfig.frequency_window_steps must be >= 2, "
            f"got {self.frequency_window_steps}",
        )
        if self.max_step_frequency_running < self.max_step_frequency_walking:
            warnings.warn(
                f"Running step-frequency cap ({self.max_step_frequency_running} Hz) is "
                f"below the walking cap ({self.max_step_frequency_walking} Hz)",
                RuntimeWarning,
                stacklevel=3,
            )
        if self.gyro_confirmation_enabled and self.warmup_steps == 0:
            warnings.warn(
                "Gyro confirmation with warmup_steps=0 rejects steps before any "
                "gyro history is available",
                RuntimeWarning,
                stacklevel=3,
            )


@dataclass(frozen=True)
class PDRConfig:
    """Step detection, step length, ZUPT and sampling-rate settings."""

    step_detection_window: int = 30
    default_step_length: float = 0.7
    height_ratio: float = 0.4
    user_height: Optional[float] = None
    zupt_threshold: float = 0.1
    zupt_duration_ms: float = 300.0
    zupt_window: int = 5
    zupt_damping: float = 0.1
    base_sample_rate: float = 25.0
    high_sample_rate: float = 100.0
    motion_threshold: float = 2.0
    history_ms: float = 3000.0
    min_history_samples: int = 20
    magnitude_window: int = 50
    detrend_window: int = 25
    gravity_window: int = 15
    gravity_min_samples: int = 10
    min_step_interval_walking_ms: float = 600.0
    min_step_interval_running_ms: float = 400.0
    min_peak_walking: float = 0.12
    min_peak_running: float = 0.20
    peak_threshold_bounds: Tuple[float, float] = (0.12, 1.0)
    step_length_alpha: float = 0.05
    step_length_bounds: Tuple[float, float] = (0.3, 1.2)
    running_length_factor: float = 1.2
    max_angular_rate: float = 10.0
    max_altitude_step_m: float = 1.0
    vertical: VerticalDetectionConfig = field(default_factory=VerticalDetectionConfig)
    physiological: PhysiologicalConfig = field(default_factory=PhysiologicalConfig)

    def __post_init__(self) -> None:
        _require_positive(
            self,
            "step_detection_window",
            "default_step_length",
            "height_ratio",
            "zupt_threshold",
            "zupt_window",
            "base_sample_rate",
            "high_sample_rate",
            "history_ms",
            "min_history_samples",
            "magnitude_window",
            "detrend_window",
            "gravity_window",
            "gravity_min_samples",
            "step_length_alpha",
            "running_length_factor",
            "max_angular_rate",
            "max_altitude_step_m",
        )
        _require_non_negative(
            self,
            "zupt_duration_ms",
            "zupt_damping",
            "motion_threshold",
            "min_step_interval_walking_ms",
            "min_step_interval_running_ms",
            "min_peak_walking",
            "min_peak_running",
        )
        if self.user_height is not None:
            _require(
                self.user_height > 0,
                f"PDRConfig.user_height must be positive, got {self.user_height}",
            )
        _require(
            self.step_length_alpha <= 1.0,
            f"PDRConfig.step_length_alpha must be <= 1, got {self.step_length_alpha}",
        )
        _require(
            self.gravity_min_samples <= self.gravity_window,
            f"PDRConfig.gravity_min_samples ({self.gravity_min_samples}) exceeds "
            f"gravity_window ({self.gravity_window})",
        )
        _require_range(self, "peak_threshold_bounds")
        _require_range(self, "step_length_bounds")

    @property
    def buffer_size(self) -> int:
        """Capacity of the acceleration / gyroscope / magnetometer windows."""
        return max(self.step_detection_window, 50)


@dataclass(frozen=True)
class HeadingFilterConfig:
    """Heading reading filter and segment stabilizer (angles in degrees)."""

    max_accuracy_deg: float = 15.0
    max_jump_deg: float = 45.0
    max_consecutive_bad: int = 5
    median_window: int = 5
    alpha: float = 0.02
    excellent_accuracy_deg: float = 5.0
    poor_accuracy_deg: float = 10.0
    deadband_deg: float = 3.0
    segment_change_deg: float = 10.0
    segment_stable_ms: float = 200.0
    segment_min_steps: int = 3

    def __post_init__(self) -> None:
        _require_positive(
            self,
            "max_accuracy_deg",
            "max_jump_deg",
            "max_consecutive_bad",
            "median_window",
            "alpha",
        )
        _require_non_negative(
            self,
            "excellent_accuracy_deg",
            "poor_accuracy_deg",
            "deadband_deg",
            "segment_change_deg",
            "segment_stable_ms",
            "segment_min_steps",
        )
        _require(
            self.alpha * 2.0 <= 1.0,
            f"HeadingFilterConfig.alpha must be <= 0.5, got {self.alpha}",
        )
        _require(
            self.deadband_deg <= self.segment_change_deg,
            f"HeadingFilterConfig.deadband_deg ({self.deadband_deg}) exceeds "
            f"segment_change_deg ({self.segment_change_deg})",
        )


@dataclass(frozen=True)
class OrientationBufferConfig:
    """Ring of recent yaw samples used to split native step batches."""

    capacity: int = 100
    median_window: int = 5
    smoothing_half_width: int = 2
    push_interval_ms: float = 100.0

    def __post_init__(self) -> None:
        _require_positive(self, "capacity", "median_window", "push_interval_ms")
        _require_non_negative(self, "smoothing_half_width")


@dataclass(frozen=True)
class PipelineConfig:
    """Top-level configuration handed to Pipeline."""

    attitude: AttitudeConfig = field(default_factory=AttitudeConfig)
    pdr: PDRConfig = field(default_factory=PDRConfig)
    heading: HeadingFilterConfig = field(default_factory=HeadingFilterConfig)
    orientation_buffer: OrientationBufferConfig = field(default_factory=OrientationBufferConfig)
    limits: SampleLimits = field(default_factory=SampleLimits)
    log_interval_ms: float = 5000.0

    def __post_init__(self) -> None:
        _require_non_negative(self, "log_interval_ms")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PipelineConfig":
        """
        Build a configuration from a nested mapping.

        Keys may be camelCase or snake_case. Top-level keys that are not
        sections of PipelineConfig are PDR options, so the flat record
        ``{"stepDetectionWindow": 40, "attitude": {"beta": 0.2}}`` is valid.

        Raises:
            ConfigurationError: On unknown keys, wrong nesting or invalid values.
        """
        if not isinstance(data, Mapping):
            raise ConfigurationError(
                f"Configuration must be a mapping, got {type(data).__name__}"
            )
        own_fields = {f.name for f in dataclasses.fields(cls)}
        top: Dict[str, Any] = {}
        pdr: Dict[str, Any] = {}
        for key, value in data.items():
            name = _field_name(key)
            if name in own_fields:
                top[key] = value
            else:
                pdr[key] = value
        if pdr:
            pdr_key = next((k for k in top if _field_name(k) == "pdr"), None)
            if pdr_key is not None:
                merged = dict(top.pop(pdr_key))
                merged.update(pdr)
                pdr = merged
            top["pdr"] = pdr
        return _build(cls, top, "")

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> "PipelineConfig":
        """Load a configuration from a JSON file."""
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return cls.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        """Nested snake_case dictionary (JSON-serializable)."""
        return dataclasses.asdict(self)


# Keys whose snake_case form differs from the dataclass field name
_ALIASES = {
    "zupt_duration": "zupt_duration_ms",
    "stability_duration": "stability_duration_ms",
    "stability_window": "stability_window_ms",
    "recalibration_interval": "recalibration_interval_ms",
    "vertical_step_detection": "vertical",
    "physiological_constraints": "physiological",
    "orientation_confidence": "orientation_confidence_threshold",
    "fallback_lockout": "fallback_lockout_ms",
    "heading_filter": "heading",
}

_NESTED: Dict[Tuple[type, str], type] = {
    (PipelineConfig, "attitude"): AttitudeConfig,
    (PipelineConfig, "pdr"): PDRConfig,
    (PipelineConfig, "heading"): HeadingFilterConfig,
    (PipelineConfig, "orientation_buffer"): OrientationBufferConfig,
    (PipelineConfig, "limits"): SampleLimits,
    (PDRConfig, "vertical"): VerticalDetectionConfig,
    (PDRConfig, "physiological"): PhysiologicalConfig,
}

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


def _field_name(key: str) -> str:
    snake = _CAMEL_RE.sub("_", str(key)).lower()
    return _ALIASES.get(snake, snake)


def _build(cls: Type[Any], data: Mapping[str, Any], path: str) -> Any:
    if not isinstance(data, Mapping):
        raise ConfigurationError(
            f"Configuration section '{path.rstrip('.') or cls.__name__}' must be a mapping"
        )
    names = {f.name for f in dataclasses.fields(cls)}
    kwargs: Dict[str, Any] = {}
    for key, value in data.items():
        name = _field_name(key)
        if name not in names:
            raise ConfigurationError(f"Unknown configuration key '{path}{key}'")
        nested = _NESTED.get((cls, name))
        if nested is not None:
            kwargs[name] = _build(nested, value, f"{path}{key}.")
        elif isinstance(value, list):
            kwargs[name] = tuple(value)
        else:
            kwargs[name] = value
    try:
        return cls(**kwargs)
    except TypeError as exc:
        raise ConfigurationError(f"Invalid configuration for {cls.__name__}: {exc}") from exc
