"""
Spectral pitch extraction pipeline.

One frame goes through:

1. window, zero-pad and transform
2. scale to amplitude units and take magnitudes
3. optional frame-to-frame smoothing and spectral whitening
4. peak detection and sub-bin interpolation
5. the configured post-detection stages, in order
6. final sort and cap

Each call to process() returns an immutable PipelineResult, safe to hand
to another thread.
"""

import logging
import time
from dataclasses import dataclass
from functools import lru_cache, partial
from typing import NamedTuple

import numpy as np

from .config import AnalysisConfig, Stage
from .harmonics import apply_harmonic_strategy
from .interpolation import CORRECTABLE_INTERPOLATORS, Interpolator, window_correction
from .normalizer import normalize
from .notes import octave_of
from .peak_detector import PeakCandidate, detect_peaks
from .tracking import KalmanTracker, NearestFrequencyTracker
from .transform import spectrum as compute_spectrum
from .windows import amplitude_scale, apply_window, window_table

logger = logging.getLogger(__name__)

WHITENING_EPSILON = 1e-10


class PitchEstimate(NamedTuple):
    """Published frequency/magnitude pair."""
    frequency: float  # Hz
    magnitude: float  # [0, 1] after normalization
    confidence: float | None = None
    inferred: bool = False


@dataclass(frozen=True)
class PipelineResult:
    """Result of analysing one frame."""

    candidates: tuple[PitchEstimate, ...] = ()  # strongest first
    octave: int | None = None  # octave of the strongest candidate
    spectrum_data: tuple[np.ndarray, np.ndarray] | None = None  # (frequencies, magnitudes)
    timestamp: float = 0.0

    @property
    def valid(self) -> bool:
        """True if at least one candidate survived."""
        return len(self.candidates) > 0

    @property
    def dominant(self) -> PitchEstimate | None:
        """Strongest candidate, if any."""
        return self.candidates[0] if self.candidates else None


def whiten(magnitudes: np.ndarray) -> np.ndarray:
    """Divide every bin by the mean magnitude."""
    mean = float(np.mean(magnitudes)) if len(magnitudes) else 0.0
    return magnitudes / (mean + WHITENING_EPSILON)


@lru_cache(maxsize=32)
def _calibrated_correction(estimator: Interpolator, window: str, frame_size: int) -> float:
    return window_correction(estimator, window_table(window, frame_size))


@lru_cache(maxsize=8)
def _frequency_axis(bins: int, sample_rate: int, transform_size: int) -> np.ndarray:
    axis = np.arange(bins) * sample_rate / transform_size
    axis.setflags(write=False)
    return axis


class SpectralPipeline:
    """
    Frame-at-a-time pitch candidate extractor.

    The pipeline owns the previous-frame magnitudes used for smoothing and
    both trackers. It is not thread-safe; drive it from one thread and
    share only the results.
    """

    def __init__(self, config: AnalysisConfig | None = None):
        """
        Initialize pipeline.

        Args:
            config: Analysis options, defaults to AnalysisConfig()
        """
        self._config = config or AnalysisConfig()
        self._previous_magnitudes: np.ndarray | None = None
        self._tracker = NearestFrequencyTracker()
        self._kalman = KalmanTracker()
        self._interpolator: Interpolator | None = None
        self._rejecting_frames = False  # inside a run of non-finite frames
        self._apply_config()

    @property
    def config(self) -> AnalysisConfig:
        """Current analysis options."""
        return self._config

    def configure(self, config: AnalysisConfig):
        """
        Replace the analysis options.

        Smoothing history is discarded when the frame geometry or window
        changes; tracks are kept.
        """
        old = self._config
        self._config = config
        if (old.frame_size, old.transform_size, old.window, old.sample_rate) != (
            config.frame_size,
            config.transform_size,
            config.window,
            config.sample_rate,
        ):
            self._previous_magnitudes = None
        if config.frame_smoothing == 0:
            self._previous_magnitudes = None
        self._apply_config()

    def reset(self):
        """Clear smoothing history and all tracks."""
        self._previous_magnitudes = None
        self._tracker.reset()
        self._kalman.reset()

    def process(self, samples: np.ndarray, timestamp: float | None = None) -> PipelineResult:
        """
        Analyse one frame.

        Args:
            samples: frame_size real samples
            timestamp: Time of the frame, defaults to time.monotonic()

        Returns:
            PipelineResult with candidates strongest first

        Raises:
            ValueError: If the frame length does not match the config
        """
        config = self._config
        if timestamp is None:
            timestamp = time.monotonic()

        samples = np.asarray(samples, dtype=np.float64)
        if samples.ndim != 1 or len(samples) != config.frame_size:
            raise ValueError(
                f"Expected a frame of {config.frame_size} samples, got shape {samples.shape}"
            )

        bins = config.transform_size // 2
        with np.errstate(invalid="ignore", over="ignore"):
            windowed = apply_window(samples, config.window)
            spectrum = compute_spectrum(windowed, config.transform_size)
            spectrum *= amplitude_scale(config.window, config.frame_size)
            raw_magnitudes = np.abs(spectrum[:bins])

        if not np.isfinite(raw_magnitudes).all():
            # Keep NaN/Inf out of the smoothing history; treat the frame as empty
            self._previous_magnitudes = None
            self._report_non_finite()
            spectrum_data = None
            candidates = []
        else:
            self._rejecting_frames = False
            raw_magnitudes.setflags(write=False)
            spectrum_data = (
                _frequency_axis(bins, config.sample_rate, config.transform_size),
                raw_magnitudes,
            )

            magnitudes = self._smooth(raw_magnitudes)
            if config.whitening:
                magnitudes = whiten(magnitudes)

            candidates = detect_peaks(
                magnitudes,
                spectrum,
                config.interpolation.strictness,
                self._interpolator,
                config.sample_rate,
                config.transform_size,
                min_magnitude=config.min_magnitude,
                peak_threshold=config.peak_threshold,
                relative_peak_threshold=config.relative_peak_threshold,
            )
            candidates = candidates[: config.max_detected_peaks]
            logger.debug("Detected %d peaks", len(candidates))

        candidates = self._run_stages(candidates)
        candidates.sort(key=lambda c: c.magnitude, reverse=True)
        candidates = candidates[: config.max_candidates]

        estimates = tuple(
            PitchEstimate(float(c.frequency), float(c.magnitude), c.confidence, c.inferred)
            for c in candidates
        )
        octave = octave_of(estimates[0].frequency) if estimates else None
        return PipelineResult(
            candidates=estimates,
            octave=octave,
            spectrum_data=spectrum_data,
            timestamp=timestamp,
        )

    def _apply_config(self):
        config = self._config
        self._tracker.smoothing_factor = config.track_smoothing
        self._tracker.max_missed_frames = config.max_missed_frames
        self._kalman.max_delta_hz = config.kalman_max_delta_hz
        self._interpolator = self._build_interpolator()

    def _build_interpolator(self) -> Interpolator | None:
        config = self._config
        interpolator = config.interpolation.interpolator
        if interpolator not in CORRECTABLE_INTERPOLATORS:
            return interpolator

        if config.padding_factor != 1:
            logger.warning(
                "%s is calibrated for unpadded frames; padding factor %d will bias it",
                config.interpolation.value,
                config.padding_factor,
            )
        correction = _calibrated_correction(interpolator, config.window, config.frame_size)
        logger.debug(
            "Using %s with %s window, correction %.4f",
            config.interpolation.value,
            config.window,
            correction,
        )
        return partial(interpolator, correction=correction)

    def _smooth(self, magnitudes: np.ndarray) -> np.ndarray:
        factor = self._config.frame_smoothing
        previous = self._previous_magnitudes
        if factor > 1e-9 and previous is not None and previous.shape == magnitudes.shape:
            magnitudes = factor * previous + (1 - factor) * magnitudes
        else:
            magnitudes = magnitudes.copy()
        self._previous_magnitudes = magnitudes.copy()
        return magnitudes

    def _report_non_finite(self):
        # One warning per run of bad frames
        if self._rejecting_frames:
            logger.debug("Dropping another frame with non-finite samples")
            return
        self._rejecting_frames = True
        logger.warning("Frame contains NaN or infinite samples; smoothing history discarded")

    def _run_stages(self, candidates: list[PeakCandidate]) -> list[PeakCandidate]:
        config = self._config
        for stage in config.stages:
            if stage == Stage.HARMONIC_FILTER:
                if config.harmonic_filtering:
                    candidates = apply_harmonic_strategy(
                        config.harmonic_strategy, candidates, config.harmonic_options
                    )
            elif stage == Stage.NORMALIZE:
                candidates = normalize(
                    candidates,
                    reference_floor=config.reference_floor,
                    power=config.power,
                    min_threshold=config.output_threshold,
                    max_count=config.max_candidates,
                )
            elif stage == Stage.TRACK:
                if config.track_smoothing > 0:
                    candidates = self._tracker.update(candidates)
            elif stage == Stage.KALMAN:
                if config.kalman:
                    candidates = self._kalman.update(candidates)
        return candidates
