"""
Tests for the transform engine against numpy's FFT.
"""

import numpy as np
import pytest

from spectrum_tuner.transform import convolve, inverse_transform, spectrum, transform


def random_pair(n: int, seed: int = 0) -> tuple[np.ndarray, np.ndarray]:
    """Random complex vector as (real, imag)."""
    rng = np.random.default_rng(seed)
    return rng.standard_normal(n), rng.standard_normal(n)


class TestTransform:
    """Forward transform matches numpy.fft.fft."""

    @pytest.mark.parametrize("n", [1, 2, 8, 64, 1024])
    def test_power_of_two(self, n):
        real, imag = random_pair(n)
        expected = np.fft.fft(real + 1j * imag)

        transform(real, imag)

        np.testing.assert_allclose(real, expected.real, atol=1e-9)
        np.testing.assert_allclose(imag, expected.imag, atol=1e-9)

    @pytest.mark.parametrize("n", [3, 5, 12, 100, 1000])
    def test_arbitrary_length(self, n):
        real, imag = random_pair(n, seed=n)
        expected = np.fft.fft(real + 1j * imag)

        transform(real, imag)

        np.testing.assert_allclose(real, expected.real, atol=1e-8)
        np.testing.assert_allclose(imag, expected.imag, atol=1e-8)

    def test_length_preserved(self):
        real, imag = random_pair(100)
        transform(real, imag)
        assert len(real) == 100
        assert len(imag) == 100

    def test_mismatched_lengths_raise(self):
        with pytest.raises(ValueError):
            transform(np.zeros(8), np.zeros(4))

    def test_empty_is_noop(self):
        real = np.zeros(0)
        imag = np.zeros(0)
        transform(real, imag)
        assert len(real) == 0

    def test_strided_input(self):
        """Non-contiguous views are transformed in place."""
        base_re = np.zeros(32)
        base_im = np.zeros(32)
        real, imag = base_re[::2], base_im[::2]
        real[:], imag[:] = random_pair(16, seed=3)
        expected = np.fft.fft(real + 1j * imag)

        transform(real, imag)

        np.testing.assert_allclose(base_re[::2], expected.real, atol=1e-9)
        np.testing.assert_allclose(base_im[::2], expected.imag, atol=1e-9)


class TestRoundTrip:
    """Inverse of forward, scaled by 1/N, reconstructs the input."""

    @pytest.mark.parametrize("n", [64, 100])
    def test_round_trip(self, n):
        real, imag = random_pair(n, seed=7)
        original_re, original_im = real.copy(), imag.copy()

        transform(real, imag)
        inverse_transform(real, imag)

        np.testing.assert_allclose(real / n, original_re, rtol=1e-5, atol=1e-9)
        np.testing.assert_allclose(imag / n, original_im, rtol=1e-5, atol=1e-9)


class TestConvolve:
    """Circular convolution."""

    @pytest.mark.parametrize("n", [16, 30])
    def test_matches_direct(self, n):
        xr, xi = random_pair(n, seed=1)
        yr, yi = random_pair(n, seed=2)
        x = xr + 1j * xi
        y = yr + 1j * yi
        expected = np.array([sum(x[j] * y[(k - j) % n] for j in range(n)) for k in range(n)])

        zr, zi = convolve(xr, xi, yr, yi)

        np.testing.assert_allclose(zr, expected.real, atol=1e-9)
        np.testing.assert_allclose(zi, expected.imag, atol=1e-9)

    def test_inputs_not_modified(self):
        xr, xi = random_pair(8, seed=4)
        yr, yi = random_pair(8, seed=5)
        copies = [a.copy() for a in (xr, xi, yr, yi)]

        convolve(xr, xi, yr, yi)

        for original, copy in zip((xr, xi, yr, yi), copies):
            np.testing.assert_array_equal(original, copy)

    def test_length_mismatch_raises(self):
        with pytest.raises(ValueError):
            convolve(np.zeros(4), np.zeros(4), np.zeros(8), np.zeros(8))


class TestSpectrum:
    """Zero-padded real spectrum helper."""

    def test_zero_padding(self):
        samples = np.random.default_rng(9).standard_normal(100)
        result = spectrum(samples, 256)
        np.testing.assert_allclose(result, np.fft.fft(samples, 256), atol=1e-9)

    def test_too_short_transform_raises(self):
        with pytest.raises(ValueError):
            spectrum(np.zeros(64), 32)
