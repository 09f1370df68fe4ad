"""
Harmonic analysis of peak candidates.

Two strategies are available and they are not interchangeable:

FUNDAMENTAL_INFERENCE scores every candidate by how well it explains the
others as integer harmonics, keeps the best candidate per 10 Hz bucket and
can synthesize a missing fundamental. Output magnitudes are weighted by the
resulting confidence, so rankings change substantially.

SUPPRESSION keeps every candidate and only attenuates those sitting at an
integer multiple of one of the strongest candidates.
"""

import math
from dataclasses import dataclass, field, replace
from enum import Enum

from .peak_detector import PeakCandidate


class HarmonicStrategy(Enum):
    """Harmonic filtering policy."""

    FUNDAMENTAL_INFERENCE = "fundamental-inference"
    SUPPRESSION = "suppression"


@dataclass
class HarmonicOptions:
    """Tunables for both harmonic strategies."""

    min_frequency: float = 80.0
    max_frequency: float = 21000.0
    harmonic_tolerance: float = 0.03  # relative ratio error
    prefer_lower_fundamentals: bool = True
    strict_harmonic_ratios: bool = True  # only harmonics 2..8
    override_threshold: float = 0.15
    bucket_width: float = 10.0  # Hz
    confidence_cutoff: float = 0.5
    confidence_exponent: float = 1.3
    # SUPPRESSION only
    top_k: int = 3
    max_multiple: int = 10
    attenuation: float = 0.5  # applied to an exact harmonic


@dataclass
class _Relation:
    peak: PeakCandidate
    harmonic_number: int
    error: float
    strength: float


@dataclass
class _Entry:
    peak: PeakCandidate
    harmonics: list[_Relation] = field(default_factory=list)
    harmonic_of: list[_Relation] = field(default_factory=list)
    confidence: float = 0.0
    inferred: bool = False


def apply_harmonic_strategy(
    strategy: HarmonicStrategy,
    candidates: list[PeakCandidate],
    options: HarmonicOptions | None = None,
) -> list[PeakCandidate]:
    """Run the selected harmonic strategy; output is sorted by magnitude."""
    options = options or HarmonicOptions()
    if strategy == HarmonicStrategy.FUNDAMENTAL_INFERENCE:
        fundamentals = infer_fundamentals(candidates, options)
        return weight_by_confidence(fundamentals, options.confidence_exponent)
    return suppress_harmonics(candidates, options)


def infer_fundamentals(
    candidates: list[PeakCandidate],
    options: HarmonicOptions | None = None,
) -> list[PeakCandidate]:
    """
    Infer fundamentals from harmonic relationships between candidates.

    Args:
        candidates: Peak candidates in any order
        options: Harmonic tunables

    Returns:
        New candidates with confidence and inferred set, sorted by
        descending confidence and limited to confidence above the cutoff
    """
    options = options or HarmonicOptions()
    if len(candidates) < 2:
        return [replace(c, confidence=1.0) for c in candidates]

    valid = sorted(
        (c for c in candidates if options.min_frequency <= c.frequency <= options.max_frequency),
        key=lambda c: c.frequency,
    )

    entries = []
    for i, potential in enumerate(valid):
        entry = _Entry(peak=potential)
        for j, other in enumerate(valid):
            if j == i:
                continue
            if other.frequency > potential.frequency:
                match = _harmonic_match(potential.frequency, other.frequency, options)
                if match is not None:
                    number, error = match
                    entry.harmonics.append(
                        _Relation(other, number, error, _safe_ratio(other.magnitude, potential.magnitude))
                    )
            elif j < i:
                match = _harmonic_match(other.frequency, potential.frequency, options)
                if match is not None:
                    number, error = match
                    entry.harmonic_of.append(
                        _Relation(other, number, error, _safe_ratio(other.magnitude, potential.magnitude))
                    )
        entries.append(entry)

    for entry in entries:
        _score(entry, options)

    buckets: dict[int, _Entry] = {}
    for entry in entries:
        bucket = math.floor(entry.peak.frequency / options.bucket_width)
        if bucket not in buckets or buckets[bucket].confidence < entry.confidence:
            buckets[bucket] = entry

    # Probe below each confident fundamental for a missing, weaker one
    for entry in list(buckets.values()):
        if not entry.harmonics:
            continue
        for divisor in range(2, 5):
            sub_frequency = entry.peak.frequency / divisor
            if sub_frequency < options.min_frequency:
                continue
            bucket = math.floor(sub_frequency / options.bucket_width)
            if bucket in buckets:
                continue
            if _count_harmonics_of(sub_frequency, valid, options.harmonic_tolerance) >= 3:
                buckets[bucket] = _Entry(
                    peak=PeakCandidate(sub_frequency, entry.peak.magnitude / divisor),
                    confidence=entry.confidence * 0.8,
                    inferred=True,
                )

    ranked = sorted(buckets.values(), key=lambda e: e.confidence, reverse=True)
    return [
        PeakCandidate(
            frequency=e.peak.frequency,
            magnitude=e.peak.magnitude,
            confidence=e.confidence,
            inferred=e.inferred,
        )
        for e in ranked
        if e.confidence > options.confidence_cutoff
    ]


def weight_by_confidence(candidates: list[PeakCandidate], exponent: float = 1.3) -> list[PeakCandidate]:
    """
    Scale confidence to the strongest one, sharpen it and fold it into magnitude.
    """
    if not candidates:
        return []
    max_confidence = max(c.confidence or 0.0 for c in candidates)
    if max_confidence <= 0:
        return []

    weighted = []
    for c in candidates:
        confidence = ((c.confidence or 0.0) / max_confidence) ** exponent
        weighted.append(replace(c, confidence=confidence, magnitude=c.magnitude * confidence))
    weighted.sort(key=lambda c: c.magnitude, reverse=True)
    return weighted


def suppress_harmonics(
    candidates: list[PeakCandidate],
    options: HarmonicOptions | None = None,
) -> list[PeakCandidate]:
    """
    Attenuate candidates that are integer multiples of strong candidates.

    The top_k candidates by magnitude (lower frequency first on ties) are
    potential fundamentals. A candidate within harmonic_tolerance of
    2x..max_multiple x one of them is scaled by a factor between
    `attenuation` (exact multiple) and 1 (at the tolerance edge), once per
    matching fundamental. Nothing is removed.
    """
    options = options or HarmonicOptions()
    result = [replace(c) for c in candidates]
    fundamentals = sorted(result, key=lambda c: (-c.magnitude, c.frequency))[: options.top_k]
    fundamental_frequencies = [(id(f), f.frequency) for f in fundamentals if f.frequency > 0]

    for candidate in result:
        for fundamental_id, fundamental in fundamental_frequencies:
            if fundamental_id == id(candidate):
                continue
            for multiple in range(2, options.max_multiple + 1):
                target = multiple * fundamental
                error = abs(candidate.frequency - target) / target
                if error < options.harmonic_tolerance:
                    scale = error / options.harmonic_tolerance
                    candidate.magnitude *= options.attenuation + (1 - options.attenuation) * scale
                    break

    result.sort(key=lambda c: c.magnitude, reverse=True)
    return result


def _harmonic_match(
    lower: float,
    higher: float,
    options: HarmonicOptions,
) -> tuple[int, float] | None:
    """Harmonic number and relative error if higher is a harmonic of lower."""
    if lower <= 0:
        return None
    ratio = higher / lower
    number = round(ratio)
    if number < 2:
        return None
    if options.strict_harmonic_ratios and number > 8:
        return None
    error = abs(ratio - number) / number
    if error < options.harmonic_tolerance:
        return number, error
    return None


def _score(entry: _Entry, options: HarmonicOptions) -> None:
    harmonic_count = len(entry.harmonics)
    harmonic_strength = (
        sum(h.strength for h in entry.harmonics) / harmonic_count if harmonic_count else 0.0
    )
    confidence = harmonic_count * 1.5 + harmonic_strength * 0.9

    # Strong evidence that this peak is itself a harmonic of a lower one
    if entry.harmonic_of:
        evidence = max(
            0.0,
            max((1 - rel.error * 10) * rel.strength for rel in entry.harmonic_of),
        )
        evidence = min(evidence, 1.0)
        if evidence > options.override_threshold:
            confidence *= 1 - evidence

    if options.prefer_lower_fundamentals:
        frequency_factor = max(0.2, 1 - entry.peak.frequency / 1000)
        confidence *= 1 + frequency_factor

    entry.confidence = confidence


def _count_harmonics_of(frequency: float, peaks: list[PeakCandidate], tolerance: float) -> int:
    count = 0
    for peak in peaks:
        ratio = peak.frequency / frequency
        number = round(ratio)
        if 1 <= number <= 16 and abs(ratio - number) / number < tolerance:
            count += 1
    return count


def _safe_ratio(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator > 0 else 0.0
