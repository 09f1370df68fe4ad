"""
Window coefficient tables.

Tables are generated with scipy.signal.windows, cached per (name, length)
and returned read-only so every frame can share them.
"""

from functools import lru_cache

import numpy as np
from scipy.signal import windows as scipy_windows

WINDOW_NAMES = ("hann", "hamming", "blackman-harris", "flat-top", "gaussian", "rectangular")

GAUSSIAN_ALPHA = 2.5


@lru_cache(maxsize=32)
def window_table(name: str, length: int) -> np.ndarray:
    """
    Get the coefficient table for a named window.

    Args:
        name: One of WINDOW_NAMES
        length: Number of coefficients (analysis frame size)

    Returns:
        Read-only float64 array of the given length
    """
    if length < 1:
        raise ValueError(f"Window length must be positive, got {length}")

    if name == "hann":
        table = scipy_windows.hann(length)
    elif name == "hamming":
        table = scipy_windows.hamming(length)
    elif name == "blackman-harris":
        table = scipy_windows.blackmanharris(length)
    elif name == "flat-top":
        table = scipy_windows.flattop(length)
    elif name == "gaussian":
        # exp(-0.5 * (alpha * x)^2) with x in [-1, 1]
        std = max((length - 1) / (2.0 * GAUSSIAN_ALPHA), 1e-12)
        table = scipy_windows.gaussian(length, std)
    elif name == "rectangular":
        table = np.ones(length)
    else:
        raise ValueError(f"Unknown window '{name}', expected one of {WINDOW_NAMES}")

    table = np.asarray(table, dtype=np.float64)
    table.setflags(write=False)
    return table


def apply_window(samples: np.ndarray, name: str) -> np.ndarray:
    """Multiply a frame by the named window, returning a new array."""
    samples = np.asarray(samples, dtype=np.float64)
    return samples * window_table(name, len(samples))


def amplitude_scale(name: str, length: int) -> float:
    """
    Factor that maps a windowed sinusoid's peak bin to its amplitude.

    A full-scale sine at a bin centre then reads as magnitude 1.0.
    """
    return 2.0 / float(np.sum(window_table(name, length)))
