"""
Tests for peak detection and the detector's output invariants.
"""

from functools import partial

import numpy as np
import pytest

from spectrum_tuner.interpolation import (
    PeakEstimate,
    jacobsen_interpolate,
    parabolic_interpolate,
)
from spectrum_tuner.peak_detector import PeakCandidate, Strictness, detect_peaks

# 5 Hz bins
SAMPLE_RATE = 160
TRANSFORM_SIZE = 32


def peaked_spectrum(peaks: dict[int, float], length: int = TRANSFORM_SIZE // 2) -> np.ndarray:
    """Magnitude array with triangular peaks at the given bins."""
    magnitudes = np.zeros(length)
    for index, height in peaks.items():
        magnitudes[index] = max(magnitudes[index], height)
        for offset in (-1, 1):
            if 0 <= index + offset < length:
                magnitudes[index + offset] = max(magnitudes[index + offset], height / 2)
    return magnitudes


def detect(magnitudes, strictness=Strictness.LOOSE, interpolator=parabolic_interpolate, **kwargs):
    return detect_peaks(
        magnitudes,
        None,
        strictness,
        interpolator,
        SAMPLE_RATE,
        TRANSFORM_SIZE,
        **kwargs,
    )


class TestSilence:
    """Frames below the global gate yield no candidates."""

    def test_zeros(self):
        assert detect(np.zeros(16)) == []

    def test_below_floor(self):
        magnitudes = peaked_spectrum({8: 5e-5})
        assert detect(magnitudes, min_magnitude=1e-4) == []

    def test_empty(self):
        assert detect(np.zeros(0)) == []


class TestStrictness:
    """Neighbourhood rules."""

    def test_none_returns_every_bin(self):
        magnitudes = peaked_spectrum({8: 1.0})
        candidates = detect(magnitudes, Strictness.NONE, None)

        # bins 4..15 (20 Hz and up), zeros included; bin 0 is never a candidate
        assert [c.frequency for c in candidates[:3]] == [40.0, 35.0, 45.0]
        assert candidates[0].magnitude == 1.0
        assert sorted(c.frequency for c in candidates) == [5.0 * i for i in range(4, 16)]

    def test_none_ignores_peak_gates(self):
        magnitudes = peaked_spectrum({8: 1.0, 12: 0.02})
        candidates = detect(
            magnitudes, Strictness.NONE, None, peak_threshold=0.1, relative_peak_threshold=0.05
        )
        assert 60.0 in [c.frequency for c in candidates]

    def test_none_keeps_silence_gate(self):
        magnitudes = peaked_spectrum({8: 5e-5})
        assert detect(magnitudes, Strictness.NONE, None, min_magnitude=1e-4) == []

    def test_loose_finds_local_maxima(self):
        magnitudes = peaked_spectrum({5: 1.0, 10: 0.5})
        candidates = detect(magnitudes)

        assert len(candidates) == 2
        assert candidates[0].frequency == pytest.approx(25.0)
        assert candidates[1].frequency == pytest.approx(50.0)

    def test_strict_rejects_narrow_shoulder(self):
        magnitudes = np.zeros(16)
        # bin 8 beats bins 7 and 9 but not bin 10
        magnitudes[6:12] = [0.1, 0.3, 0.6, 0.5, 0.9, 0.2]
        loose = detect(magnitudes, Strictness.LOOSE)
        strict = detect(magnitudes, Strictness.STRICT)

        assert len(loose) == 2
        assert len(strict) == 1
        assert strict[0].frequency == pytest.approx(50.0, abs=5.0)

    def test_interpolator_required(self):
        with pytest.raises(ValueError):
            detect(peaked_spectrum({8: 1.0}), Strictness.LOOSE, None)

    def test_complex_interpolator_needs_spectrum(self):
        with pytest.raises(ValueError):
            detect(peaked_spectrum({8: 1.0}), Strictness.STRICT, jacobsen_interpolate)

    def test_partial_complex_interpolator_needs_spectrum(self):
        corrected = partial(jacobsen_interpolate, correction=2.0)
        with pytest.raises(ValueError):
            detect(peaked_spectrum({8: 1.0}), Strictness.STRICT, corrected)


class TestGates:
    """Per-peak gates."""

    def test_absolute_threshold(self):
        magnitudes = peaked_spectrum({5: 1.0, 10: 5e-4})
        candidates = detect(magnitudes, peak_threshold=1e-3)
        assert len(candidates) == 1

    def test_relative_threshold(self):
        magnitudes = peaked_spectrum({5: 1.0, 10: 0.03})
        assert len(detect(magnitudes, relative_peak_threshold=0.0)) == 2
        assert len(detect(magnitudes, relative_peak_threshold=0.05)) == 1


class TestInvariants:
    """Band limits and NaN filtering are unconditional."""

    def test_below_audible_band_dropped(self):
        # bin 3 is 15 Hz
        magnitudes = peaked_spectrum({3: 1.0, 10: 0.5})
        candidates = detect(magnitudes)
        assert [round(c.frequency) for c in candidates] == [50]

    def test_nan_estimates_dropped(self):
        def broken(view, index, sample_rate, transform_size):
            if index == 5:
                return PeakEstimate(float("nan"), 1.0)
            return PeakEstimate(index * sample_rate / transform_size, float(view[index]))

        magnitudes = peaked_spectrum({5: 1.0, 10: 0.5})
        candidates = detect(magnitudes, interpolator=broken)
        assert len(candidates) == 1
        assert candidates[0].frequency == pytest.approx(50.0)

    def test_sorted_by_magnitude(self):
        magnitudes = peaked_spectrum({4: 0.2, 8: 0.9, 12: 0.5})
        candidates = detect(magnitudes)
        mags = [c.magnitude for c in candidates]
        assert mags == sorted(mags, reverse=True)
        assert all(isinstance(c, PeakCandidate) for c in candidates)

    def test_input_not_modified(self):
        magnitudes = peaked_spectrum({8: 1.0})
        before = magnitudes.copy()
        detect(magnitudes)
        np.testing.assert_array_equal(magnitudes, before)


class TestWithComplexSpectrum:
    """Complex interpolators read the complex spectrum."""

    def test_jacobsen_on_rectangular_tone(self):
        n = 256
        sample_rate = 256.0
        t = np.arange(n)
        tone = np.exp(2j * np.pi * 40.3 * t / n)
        spectrum = np.fft.fft(tone)
        magnitudes = np.abs(spectrum[: n // 2])

        candidates = detect_peaks(
            magnitudes, spectrum, Strictness.STRICT, jacobsen_interpolate, sample_rate, n,
            relative_peak_threshold=0.05,
        )

        assert len(candidates) == 1
        assert candidates[0].frequency == pytest.approx(40.3, abs=0.01)
