"""
Analysis configuration.

Everything a pipeline stage reads comes from an AnalysisConfig instance;
there is no module-level mutable state. Configs are validated on creation
and replaced wholesale between analysis cycles.
"""

import dataclasses
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

from .constants import FRAME_SIZE, MAX_CANDIDATES, MAX_DETECTED_PEAKS, PADDING_FACTOR, SAMPLE_RATE
from .harmonics import HarmonicOptions, HarmonicStrategy
from .interpolation import (
    Interpolator,
    jacobsen_interpolate,
    log_parabolic_interpolate,
    parabolic_interpolate,
    quinn_complex_interpolate,
    quinn_interpolate,
)
from .peak_detector import Strictness
from .windows import WINDOW_NAMES

logger = logging.getLogger(__name__)


class InterpolationMethod(Enum):
    """Sub-bin peak refinement method."""

    NONE = "none"  # every bin is a candidate
    PARABOLIC = "parabolic"
    PARABOLIC_LOG = "parabolic-log"  # parabola through log magnitudes
    QUINN = "quinn"  # magnitude-only Quinn, tapered windows only
    QUINN_COMPLEX = "quinn-complex"
    JACOBSEN = "jacobsen"

    @property
    def strictness(self) -> Strictness:
        """Peak neighbourhood the method needs."""
        if self == InterpolationMethod.NONE:
            return Strictness.NONE
        if self in (InterpolationMethod.PARABOLIC, InterpolationMethod.PARABOLIC_LOG):
            return Strictness.LOOSE
        return Strictness.STRICT

    @property
    def interpolator(self) -> Interpolator | None:
        """Interpolation function, None for NONE."""
        return _INTERPOLATORS.get(self)


_INTERPOLATORS = {
    InterpolationMethod.PARABOLIC: parabolic_interpolate,
    InterpolationMethod.PARABOLIC_LOG: log_parabolic_interpolate,
    InterpolationMethod.QUINN: quinn_interpolate,
    InterpolationMethod.QUINN_COMPLEX: quinn_complex_interpolate,
    InterpolationMethod.JACOBSEN: jacobsen_interpolate,
}


class Stage(Enum):
    """Post-detection pipeline stages."""

    HARMONIC_FILTER = "harmonic-filter"
    NORMALIZE = "normalize"
    TRACK = "track"
    KALMAN = "kalman"


DEFAULT_STAGES = (Stage.HARMONIC_FILTER, Stage.NORMALIZE, Stage.TRACK, Stage.KALMAN)


@dataclass(frozen=True)
class AnalysisConfig:
    """Options for one SpectralPipeline."""

    sample_rate: int = SAMPLE_RATE
    frame_size: int = FRAME_SIZE
    padding_factor: int = PADDING_FACTOR  # transform size = frame size * factor
    window: str = "hann"
    interpolation: InterpolationMethod = InterpolationMethod.PARABOLIC

    # Detection gates, in amplitude units (full-scale sine = 1.0)
    min_magnitude: float = 1e-4  # frame maximum below this is silence
    peak_threshold: float = 1e-3  # absolute per-peak gate
    relative_peak_threshold: float = 0.05  # per-peak gate relative to the frame maximum

    # Normalization
    output_threshold: float = 1e-3  # normalized magnitude floor
    reference_floor: float = 5e-4
    power: float = 1.7

    # Smoothing (0 disables)
    frame_smoothing: float = 0.6
    track_smoothing: float = 0.1
    max_missed_frames: int = 0

    whitening: bool = False
    harmonic_filtering: bool = False
    harmonic_strategy: HarmonicStrategy = HarmonicStrategy.FUNDAMENTAL_INFERENCE
    harmonic_options: HarmonicOptions = field(default_factory=HarmonicOptions)
    kalman: bool = False
    kalman_max_delta_hz: float = 40.0

    stages: tuple[Stage, ...] = DEFAULT_STAGES
    max_detected_peaks: int = MAX_DETECTED_PEAKS
    max_candidates: int = MAX_CANDIDATES

    def __post_init__(self):
        _require(self.sample_rate > 0, "sample_rate", self.sample_rate)
        _require(self.frame_size >= 4, "frame_size", self.frame_size)
        _require(
            isinstance(self.padding_factor, int) and self.padding_factor >= 1,
            "padding_factor",
            self.padding_factor,
        )
        _require(self.window in WINDOW_NAMES, "window", self.window)
        _require(isinstance(self.interpolation, InterpolationMethod), "interpolation", self.interpolation)
        # Magnitude-only Quinn assumes the negative side lobes of a tapered window
        _require(
            not (self.interpolation == InterpolationMethod.QUINN and self.window == "rectangular"),
            "window",
            f"{self.window} (use quinn-complex with a rectangular window)",
        )
        for name in ("min_magnitude", "peak_threshold", "relative_peak_threshold", "output_threshold", "reference_floor"):
            _require(getattr(self, name) >= 0, name, getattr(self, name))
        _require(self.power > 0, "power", self.power)
        _require(0 <= self.frame_smoothing < 1, "frame_smoothing", self.frame_smoothing)
        _require(self.track_smoothing >= 0, "track_smoothing", self.track_smoothing)
        _require(self.max_missed_frames >= 0, "max_missed_frames", self.max_missed_frames)
        _require(
            isinstance(self.harmonic_strategy, HarmonicStrategy),
            "harmonic_strategy",
            self.harmonic_strategy,
        )
        _require(self.kalman_max_delta_hz > 0, "kalman_max_delta_hz", self.kalman_max_delta_hz)
        _require(all(isinstance(s, Stage) for s in self.stages), "stages", self.stages)
        _require(len(set(self.stages)) == len(self.stages), "stages", self.stages)
        _require(self.max_detected_peaks >= 1, "max_detected_peaks", self.max_detected_peaks)
        _require(self.max_candidates >= 1, "max_candidates", self.max_candidates)

    @property
    def transform_size(self) -> int:
        """Length of the zero-padded transform."""
        return self.frame_size * self.padding_factor

    def replace(self, **changes) -> "AnalysisConfig":
        """Copy with some options changed (validated)."""
        return dataclasses.replace(self, **changes)

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any]) -> "AnalysisConfig":
        """
        Build a config from a flat mapping of option names to values.

        Enum options accept either members or their string values; stages
        accepts a sequence of either. Unknown keys are ignored with a
        warning.

        Raises:
            ValueError: If a value is invalid
        """
        known = {f.name for f in dataclasses.fields(cls)}
        kwargs = {}
        for key, value in options.items():
            if key not in known:
                logger.warning("Ignoring unknown analysis option '%s'", key)
                continue
            kwargs[key] = _coerce(key, value)
        return cls(**kwargs)


def _coerce(key: str, value: Any) -> Any:
    try:
        if key == "interpolation":
            return InterpolationMethod(value)
        if key == "harmonic_strategy":
            return HarmonicStrategy(value)
        if key == "stages":
            return tuple(Stage(s) for s in value)
        if key == "harmonic_options" and isinstance(value, Mapping):
            return HarmonicOptions(**value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid value for {key}: {value!r}") from exc
    return value


def _require(condition: bool, name: str, value: Any):
    if not condition:
        raise ValueError(f"Invalid value for {name}: {value!r}")
