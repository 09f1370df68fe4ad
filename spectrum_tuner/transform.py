"""
Discrete Fourier transform for arbitrary-length frames.

Power-of-two lengths use an iterative radix-2 Cooley-Tukey transform.
Every other length goes through Bluestein's chirp-z algorithm, which turns
the DFT into a circular convolution of power-of-two length.

All transforms work in place on a pair of float64 arrays (real, imag),
so callers can reuse buffers between frames.
"""

from functools import lru_cache

import numpy as np


def transform(real: np.ndarray, imag: np.ndarray) -> None:
    """
    Compute the forward DFT of (real, imag) in place.

    Args:
        real: Real parts, float64 array
        imag: Imaginary parts, float64 array of the same length

    Raises:
        ValueError: If the arrays differ in length
    """
    n = _check_pair(real, imag)
    if n == 0:
        return
    if n & (n - 1) == 0:
        _transform_radix2(real, imag)
    else:
        _transform_bluestein(real, imag)


def inverse_transform(real: np.ndarray, imag: np.ndarray) -> None:
    """
    Compute the inverse DFT in place, without the 1/N scaling.

    Swapping the real and imaginary parts around a forward transform
    yields the conjugate transform.
    """
    transform(imag, real)


def convolve(
    xreal: np.ndarray,
    ximag: np.ndarray,
    yreal: np.ndarray,
    yimag: np.ndarray,
) -> tuple[np.ndarray, np.ndarray]:
    """
    Circular convolution of two complex vectors of equal length.

    Inputs are copied, not modified.

    Returns:
        Tuple of (real, imag) arrays of the convolution
    """
    n = _check_pair(xreal, ximag)
    if _check_pair(yreal, yimag) != n:
        raise ValueError("Convolution inputs must have the same length")

    xreal = np.array(xreal, dtype=np.float64)
    ximag = np.array(ximag, dtype=np.float64)
    yreal = np.array(yreal, dtype=np.float64)
    yimag = np.array(yimag, dtype=np.float64)
    if n == 0:
        return xreal, ximag

    transform(xreal, ximag)
    transform(yreal, yimag)

    zreal = xreal * yreal - ximag * yimag
    zimag = ximag * yreal + xreal * yimag

    inverse_transform(zreal, zimag)
    zreal /= n
    zimag /= n
    return zreal, zimag


def spectrum(samples: np.ndarray, transform_size: int | None = None) -> np.ndarray:
    """
    Zero-pad a real frame and return its complex spectrum.

    Args:
        samples: Real-valued (already windowed) samples
        transform_size: Transform length, defaults to len(samples)

    Returns:
        Complex array of length transform_size
    """
    samples = np.asarray(samples, dtype=np.float64)
    if transform_size is None:
        transform_size = len(samples)
    if transform_size < len(samples):
        raise ValueError(
            f"transform_size {transform_size} is shorter than the frame ({len(samples)})"
        )

    real = np.zeros(transform_size, dtype=np.float64)
    imag = np.zeros(transform_size, dtype=np.float64)
    real[: len(samples)] = samples
    transform(real, imag)
    return real + 1j * imag


def _check_pair(real: np.ndarray, imag: np.ndarray) -> int:
    if len(real) != len(imag):
        raise ValueError(
            f"Mismatched lengths: real has {len(real)} samples, imag has {len(imag)}"
        )
    return len(real)


@lru_cache(maxsize=16)
def _radix2_tables(n: int) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Cosine/sine tables of size n/2 and the bit-reversal permutation."""
    levels = n.bit_length() - 1
    angles = 2.0 * np.pi * np.arange(n // 2) / n
    cos_table = np.cos(angles)
    sin_table = np.sin(angles)

    indices = np.arange(n)
    reversed_indices = np.zeros(n, dtype=np.intp)
    for bit in range(levels):
        reversed_indices |= ((indices >> bit) & 1) << (levels - 1 - bit)

    for table in (cos_table, sin_table, reversed_indices):
        table.setflags(write=False)
    return cos_table, sin_table, reversed_indices


def _transform_radix2(real: np.ndarray, imag: np.ndarray) -> None:
    n = len(real)
    if n == 1:
        return
    if not (real.flags.c_contiguous and imag.flags.c_contiguous):
        work_re = np.ascontiguousarray(real)
        work_im = np.ascontiguousarray(imag)
        _transform_radix2(work_re, work_im)
        real[:] = work_re
        imag[:] = work_im
        return
    cos_table, sin_table, reversed_indices = _radix2_tables(n)

    real[:] = real[reversed_indices]
    imag[:] = imag[reversed_indices]

    # Butterflies are applied to every block of a stage at once; the
    # reshaped arrays are views, so writes land in real/imag directly.
    size = 2
    while size <= n:
        half = size // 2
        twiddle = np.arange(half) * (n // size)
        c = cos_table[twiddle]
        s = sin_table[twiddle]

        blocks_re = real.reshape(-1, size)
        blocks_im = imag.reshape(-1, size)

        upper_re = blocks_re[:, half:]
        upper_im = blocks_im[:, half:]
        t_re = upper_re * c + upper_im * s
        t_im = upper_im * c - upper_re * s

        blocks_re[:, half:] = blocks_re[:, :half] - t_re
        blocks_im[:, half:] = blocks_im[:, :half] - t_im
        blocks_re[:, :half] += t_re
        blocks_im[:, :half] += t_im

        size *= 2


@lru_cache(maxsize=16)
def _bluestein_tables(n: int) -> tuple[int, np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """Chirp tables of length n and the transformed chirp filter of length m."""
    m = 1
    while m < 2 * n + 1:
        m *= 2

    k = np.arange(n, dtype=np.int64)
    # k*k mod 2n keeps the angle argument small for large n
    angles = np.pi * ((k * k) % (2 * n)) / n
    cos_table = np.cos(angles)
    sin_table = np.sin(angles)

    breal = np.zeros(m, dtype=np.float64)
    bimag = np.zeros(m, dtype=np.float64)
    breal[0] = cos_table[0]
    bimag[0] = sin_table[0]
    breal[1:n] = cos_table[1:]
    bimag[1:n] = sin_table[1:]
    breal[m - n + 1 :] = cos_table[1:][::-1]
    bimag[m - n + 1 :] = sin_table[1:][::-1]

    _transform_radix2(breal, bimag)

    for table in (cos_table, sin_table, breal, bimag):
        table.setflags(write=False)
    return m, cos_table, sin_table, breal, bimag


def _transform_bluestein(real: np.ndarray, imag: np.ndarray) -> None:
    n = len(real)
    m, cos_table, sin_table, breal, bimag = _bluestein_tables(n)

    areal = np.zeros(m, dtype=np.float64)
    aimag = np.zeros(m, dtype=np.float64)
    areal[:n] = real * cos_table + imag * sin_table
    aimag[:n] = -real * sin_table + imag * cos_table

    # Circular convolution with the pre-transformed chirp
    _transform_radix2(areal, aimag)
    creal = areal * breal - aimag * bimag
    cimag = aimag * breal + areal * bimag
    _transform_radix2(cimag, creal)
    creal /= m
    cimag /= m

    real[:] = creal[:n] * cos_table + cimag[:n] * sin_table
    imag[:] = -creal[:n] * sin_table + cimag[:n] * cos_table
