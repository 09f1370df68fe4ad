"""
Magnitude normalization and thresholding.
"""

from dataclasses import replace

from .constants import MAX_CANDIDATES, MIN_OUTPUT_FREQUENCY
from .peak_detector import PeakCandidate


def reference_magnitude(candidates: list[PeakCandidate], reference_floor: float) -> float:
    """
    Magnitude that maps to 1.0.

    The second strongest candidate is used so a single dominant tone does
    not push everything else towards zero. With one candidate the top one
    is the reference. Never below reference_floor.
    """
    magnitudes = sorted((c.magnitude for c in candidates), reverse=True)
    if not magnitudes:
        return reference_floor
    ranked = magnitudes[1] if len(magnitudes) > 1 else magnitudes[0]
    return max(reference_floor, ranked)


def normalize(
    candidates: list[PeakCandidate],
    reference_floor: float = 5e-4,
    power: float = 1.7,
    min_threshold: float = 1e-3,
    min_frequency: float = MIN_OUTPUT_FREQUENCY,
    max_count: int = MAX_CANDIDATES,
) -> list[PeakCandidate]:
    """
    Scale magnitudes to [0, 1] and drop weak or low candidates.

    Args:
        candidates: Candidates in any order
        reference_floor: Lower bound for the reference magnitude
        power: Contrast exponent applied after clamping
        min_threshold: Normalized magnitudes below this are dropped
        min_frequency: Candidates below this frequency are dropped
        max_count: Maximum number of candidates returned

    Returns:
        New candidates sorted by descending magnitude
    """
    if not candidates:
        return []

    reference = reference_magnitude(candidates, reference_floor)

    result = []
    for candidate in candidates:
        if reference > 0:
            scaled = min(max(candidate.magnitude / reference, 0.0), 1.0)
        else:
            scaled = 0.0
        scaled = scaled**power
        if scaled < min_threshold or candidate.frequency < min_frequency:
            continue
        result.append(replace(candidate, magnitude=scaled))

    result.sort(key=lambda c: c.magnitude, reverse=True)
    return result[:max_count]
