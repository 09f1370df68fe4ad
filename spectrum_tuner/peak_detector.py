"""
Peak detection over a magnitude spectrum.

Local maxima are found with scipy.signal.argrelmax, gated by magnitude, and
refined with one of the interpolators from interpolation.py. Whatever comes
out of the interpolator is checked against the audible band; NaN and
out-of-band estimates are dropped here and never reach later stages.
"""

from dataclasses import dataclass
from enum import Enum

import numpy as np
from scipy.signal import argrelmax

from .constants import MAX_AUDIBLE_HZ, MIN_AUDIBLE_HZ
from .interpolation import COMPLEX_INTERPOLATORS, Interpolator, bin_to_frequency


class Strictness(Enum):
    """How a bin must compare with its neighbours to count as a peak."""

    NONE = "none"  # every bin, no interpolation
    LOOSE = "loose"  # greater than the bins at +-1
    STRICT = "strict"  # greater than the bins at +-1 and +-2


@dataclass
class PeakCandidate:
    """A frequency/magnitude estimate for one spectral component."""

    frequency: float = 0.0  # Hz
    magnitude: float = 0.0  # non-negative, scale depends on the stage
    confidence: float | None = None  # set by fundamental inference
    inferred: bool = False  # True for a fundamental synthesized from harmonics


def detect_peaks(
    magnitudes: np.ndarray,
    spectrum: np.ndarray | None,
    strictness: Strictness,
    interpolator: Interpolator | None,
    sample_rate: float,
    transform_size: int,
    min_magnitude: float = 1e-4,
    peak_threshold: float = 1e-3,
    relative_peak_threshold: float = 0.0,
) -> list[PeakCandidate]:
    """
    Find and refine spectral peaks.

    Args:
        magnitudes: Magnitude spectrum, bins 0..transform_size/2
        spectrum: Complex spectrum, required by complex interpolators
        strictness: Neighbourhood a peak must dominate
        interpolator: Interpolator applied to each peak (unused for NONE)
        sample_rate: Audio sample rate in Hz
        transform_size: Transform length the bins come from
        min_magnitude: Frames whose maximum is below this are silence
        peak_threshold: Absolute per-peak gate, applied before interpolation
            (not for NONE)
        relative_peak_threshold: Per-peak gate as a fraction of the frame
            maximum (not for NONE)

    Returns:
        Candidates sorted by descending magnitude, empty for a silent frame
    """
    magnitudes = np.asarray(magnitudes, dtype=np.float64)
    if len(magnitudes) == 0:
        return []

    max_mag = float(np.max(magnitudes))
    if not max_mag >= min_magnitude:
        return []

    if strictness == Strictness.NONE:
        # Every bin verbatim; the per-peak gates do not apply
        indices = np.arange(1, len(magnitudes))
        candidates = [
            PeakCandidate(bin_to_frequency(i, sample_rate, transform_size), float(magnitudes[i]))
            for i in indices
        ]
    else:
        if interpolator is None:
            raise ValueError(f"Strictness {strictness.value} needs an interpolator")
        order = 1 if strictness == Strictness.LOOSE else 2
        view = _interpolation_view(interpolator, magnitudes, spectrum)
        gate = max(peak_threshold, max_mag * relative_peak_threshold)

        indices = argrelmax(magnitudes, order=order)[0]
        in_range = (indices > order) & (indices < len(magnitudes) - 2)
        indices = indices[in_range]
        indices = indices[magnitudes[indices] >= gate]

        candidates = []
        for i in indices:
            estimate = interpolator(view, int(i), sample_rate, transform_size)
            candidates.append(PeakCandidate(estimate.frequency, estimate.magnitude))

    candidates = [c for c in candidates if _is_valid(c)]
    candidates.sort(key=lambda c: c.magnitude, reverse=True)
    return candidates


def _interpolation_view(
    interpolator: Interpolator,
    magnitudes: np.ndarray,
    spectrum: np.ndarray | None,
) -> np.ndarray:
    # functools.partial wrappers carry the calibrated correction
    base = getattr(interpolator, "func", interpolator)
    if base in COMPLEX_INTERPOLATORS:
        if spectrum is None:
            raise ValueError(f"{base.__name__} needs the complex spectrum")
        return spectrum
    return magnitudes


def _is_valid(candidate: PeakCandidate) -> bool:
    frequency = candidate.frequency
    magnitude = candidate.magnitude
    if not (np.isfinite(frequency) and np.isfinite(magnitude)):
        return False
    return MIN_AUDIBLE_HZ <= frequency <= MAX_AUDIBLE_HZ and magnitude >= 0
