"""
Sub-bin peak interpolation.

Every interpolator maps (spectrum view, peak bin, sample rate, transform size)
to a refined PeakEstimate. They are pure functions: the spectrum is never
modified, and a peak too close to the edge of the view for the estimator's
neighbourhood falls back to the raw bin frequency and magnitude.

Numeric degeneracy (flat tops, zero bins) produces NaN or Inf rather than an
exception; the peak detector drops such estimates.

Ratio estimators (Quinn, Jacobsen) are derived for a rectangular window.
Tapered windows scale their offset by a nearly constant factor, which
window_correction() measures once per window table; pass it back in as
`correction`.
"""

import logging
import math
from typing import Callable, NamedTuple

import numpy as np

from .transform import spectrum as compute_spectrum

logger = logging.getLogger(__name__)

_SQRT_TWO_THIRDS = math.sqrt(2.0 / 3.0)
_SQRT6_OVER_24 = math.sqrt(6.0) / 24.0


class PeakEstimate(NamedTuple):
    """Refined location and height of a spectral peak."""
    frequency: float
    magnitude: float


Interpolator = Callable[..., PeakEstimate]


def bin_to_frequency(index: float, sample_rate: float, transform_size: int) -> float:
    """Convert a (possibly fractional) bin index to Hz."""
    return float(index * sample_rate / transform_size)


def qint(ym1: float, y0: float, yp1: float) -> tuple[float, float, float]:
    """
    Quadratic interpolation of three adjacent samples.

    Returns:
        Tuple of (p, y, a): extremum offset in bins, interpolated height,
        and half-curvature of the fitted parabola
    """
    with np.errstate(divide="ignore", invalid="ignore"):
        p = np.float64(yp1 - ym1) / np.float64(2 * (2 * y0 - yp1 - ym1))
        y = y0 - 0.25 * (ym1 - yp1) * p
        a = 0.5 * (ym1 - 2 * y0 + yp1)
    return float(p), float(y), float(a)


def parabolic_interpolate(
    magnitudes: np.ndarray,
    peak_index: int,
    sample_rate: float,
    transform_size: int,
) -> PeakEstimate:
    """Fit a parabola through the peak bin and its two neighbours."""
    magnitudes = np.asarray(magnitudes)
    if not _has_neighbours(len(magnitudes), peak_index, 1):
        return _raw_estimate(float(magnitudes[peak_index]), peak_index, sample_rate, transform_size)

    p, y, _ = qint(
        magnitudes[peak_index - 1],
        magnitudes[peak_index],
        magnitudes[peak_index + 1],
    )
    return PeakEstimate(bin_to_frequency(peak_index + p, sample_rate, transform_size), y)


def log_parabolic_interpolate(
    magnitudes: np.ndarray,
    peak_index: int,
    sample_rate: float,
    transform_size: int,
) -> PeakEstimate:
    """
    Fit a parabola through the log magnitudes of the peak and its neighbours.

    The main lobe of a Gaussian window is exactly a parabola on a log
    scale, and Hann and Hamming lobes come close, so this is far less
    biased than fitting linear magnitudes. The interpolated height is
    returned in linear units. A peak with a zero neighbour keeps its raw bin.
    """
    magnitudes = np.asarray(magnitudes)
    if not _has_neighbours(len(magnitudes), peak_index, 1):
        return _raw_estimate(float(magnitudes[peak_index]), peak_index, sample_rate, transform_size)

    neighbourhood = np.asarray(magnitudes[peak_index - 1 : peak_index + 2], dtype=np.float64)
    if not np.all(neighbourhood > 0):
        return _raw_estimate(float(magnitudes[peak_index]), peak_index, sample_rate, transform_size)

    ym1, y0, yp1 = np.log(neighbourhood)
    p, y, _ = qint(ym1, y0, yp1)
    return PeakEstimate(bin_to_frequency(peak_index + p, sample_rate, transform_size), float(np.exp(y)))


def quinn_interpolate(
    magnitudes: np.ndarray,
    peak_index: int,
    sample_rate: float,
    transform_size: int,
    correction: float = 1.0,
) -> PeakEstimate:
    """
    Quinn's second estimator from a magnitude spectrum.

    Without phase the neighbour ratios X(k+-1)/X(k) are taken as negative,
    which is how the main lobe of a raised-cosine window (Hann, Hamming)
    sits around its peak bin on an unpadded frame. Requires two neighbours
    on each side. Under a rectangular window one neighbour has the opposite
    sign and the estimate is biased; use the complex form there.
    """
    magnitudes = np.asarray(magnitudes)
    if not _has_neighbours(len(magnitudes), peak_index, 2):
        return _raw_estimate(float(magnitudes[peak_index]), peak_index, sample_rate, transform_size)

    y0 = np.float64(magnitudes[peak_index])
    with np.errstate(divide="ignore", invalid="ignore"):
        ap = -magnitudes[peak_index + 1] / y0
        am = -magnitudes[peak_index - 1] / y0
        delta = correction * _quinn_second(ap, am)

    return PeakEstimate(bin_to_frequency(peak_index + delta, sample_rate, transform_size), float(y0))


def quinn_complex_interpolate(
    spectrum: np.ndarray,
    peak_index: int,
    sample_rate: float,
    transform_size: int,
    correction: float = 1.0,
) -> PeakEstimate:
    """
    Quinn's second estimator from complex bins.

    Uses the real parts of X(k+1)/X(k) and X(k-1)/X(k). The magnitude is
    |X(k)|; no height reconstruction is attempted.
    """
    spectrum = np.asarray(spectrum)
    if not _has_neighbours(len(spectrum), peak_index, 2):
        return _raw_estimate(abs(spectrum[peak_index]), peak_index, sample_rate, transform_size)

    x0 = spectrum[peak_index]
    with np.errstate(divide="ignore", invalid="ignore"):
        ap = (spectrum[peak_index + 1] / x0).real
        am = (spectrum[peak_index - 1] / x0).real
        delta = correction * _quinn_second(ap, am)

    return PeakEstimate(bin_to_frequency(peak_index + delta, sample_rate, transform_size), float(abs(x0)))


def jacobsen_interpolate(
    spectrum: np.ndarray,
    peak_index: int,
    sample_rate: float,
    transform_size: int,
    correction: float = 1.0,
) -> PeakEstimate:
    """
    Jacobsen's three-bin estimator from complex bins.

    delta = Re[(X(k-1) - X(k+1)) / (2X(k) - X(k-1) - X(k+1))], exact for a
    rectangular window; a Hann window needs correction 2.
    """
    spectrum = np.asarray(spectrum)
    if not _has_neighbours(len(spectrum), peak_index, 1):
        return _raw_estimate(abs(spectrum[peak_index]), peak_index, sample_rate, transform_size)

    xm1 = spectrum[peak_index - 1]
    x0 = spectrum[peak_index]
    xp1 = spectrum[peak_index + 1]
    with np.errstate(divide="ignore", invalid="ignore"):
        delta = correction * ((xm1 - xp1) / (2 * x0 - xm1 - xp1)).real

    return PeakEstimate(bin_to_frequency(peak_index + delta, sample_rate, transform_size), float(abs(x0)))


COMPLEX_INTERPOLATORS = frozenset({quinn_complex_interpolate, jacobsen_interpolate})
CORRECTABLE_INTERPOLATORS = frozenset(
    {quinn_interpolate, quinn_complex_interpolate, jacobsen_interpolate}
)


def window_correction(
    estimator: Interpolator,
    window: np.ndarray,
    reference_offset: float = 0.25,
) -> float:
    """
    Measure the bias factor of a ratio estimator under a window.

    A cosine at a known fractional bin is windowed, transformed without
    padding and fed to the estimator with correction 1.0. The returned
    factor maps the raw offset back onto the true one.

    Args:
        estimator: One of CORRECTABLE_INTERPOLATORS
        window: Window coefficient table (defines the frame length)
        reference_offset: Fractional bin offset of the calibration tone

    Returns:
        Correction factor, 1.0 if the frame is too short to calibrate
    """
    n = len(window)
    peak_bin = n // 4
    if peak_bin < 3 or peak_bin > n // 2 - 3:
        return 1.0

    t = np.arange(n)
    tone = np.cos(2.0 * np.pi * (peak_bin + reference_offset) * t / n) * window
    complex_spectrum = compute_spectrum(tone)
    view = complex_spectrum if estimator in COMPLEX_INTERPOLATORS else np.abs(complex_spectrum)

    # sample_rate == transform_size makes the returned frequency a bin index
    raw = estimator(view, peak_bin, n, n)
    raw_offset = raw.frequency - peak_bin
    if not math.isfinite(raw_offset) or abs(raw_offset) < 1e-6:
        logger.warning(
            "Could not calibrate %s for this window (raw offset %s), using 1.0",
            estimator.__name__,
            raw_offset,
        )
        return 1.0
    return reference_offset / raw_offset


def _quinn_tau(x: float) -> float:
    return 0.25 * np.log(3 * x * x + 6 * x + 1) - _SQRT6_OVER_24 * np.log(
        (x + 1 - _SQRT_TWO_THIRDS) / (x + 1 + _SQRT_TWO_THIRDS)
    )


def _quinn_second(ap: float, am: float) -> float:
    dp = -ap / (1 - ap)
    dm = am / (1 - am)
    return (dp + dm) / 2 + _quinn_tau(dp * dp) - _quinn_tau(dm * dm)


def _has_neighbours(length: int, index: int, count: int) -> bool:
    return count <= index < length - count


def _raw_estimate(magnitude: float, index: int, sample_rate: float, transform_size: int) -> PeakEstimate:
    return PeakEstimate(bin_to_frequency(index, sample_rate, transform_size), float(magnitude))
