"""
Tests for harmonic analysis: fundamental inference and harmonic suppression.
"""

import pytest

from spectrum_tuner.harmonics import (
    HarmonicOptions,
    HarmonicStrategy,
    apply_harmonic_strategy,
    infer_fundamentals,
    suppress_harmonics,
    weight_by_confidence,
)
from spectrum_tuner.peak_detector import PeakCandidate


def harmonic_series(fundamental: float, count: int, magnitudes: list[float] | None = None) -> list[PeakCandidate]:
    """Candidates at 1x..count x a fundamental."""
    magnitudes = magnitudes or [1.0] * count
    return [PeakCandidate(fundamental * (n + 1), magnitudes[n]) for n in range(count)]


class TestSuppression:
    """Simple magnitude-attenuation strategy."""

    def test_equal_series(self):
        candidates = harmonic_series(220.0, 4)
        result = suppress_harmonics(candidates)
        by_freq = {round(c.frequency): c.magnitude for c in result}

        assert by_freq[220] == pytest.approx(1.0)
        assert by_freq[440] < by_freq[220]
        assert by_freq[660] < by_freq[220]
        assert by_freq[880] < by_freq[220]

    def test_nothing_removed(self):
        candidates = harmonic_series(220.0, 4)
        assert len(suppress_harmonics(candidates)) == 4

    def test_input_not_modified(self):
        candidates = harmonic_series(220.0, 4)
        suppress_harmonics(candidates)
        assert [c.magnitude for c in candidates] == [1.0] * 4

    def test_exact_harmonic_gets_full_attenuation(self):
        candidates = [PeakCandidate(200.0, 1.0), PeakCandidate(400.0, 1.0)]
        result = suppress_harmonics(candidates, HarmonicOptions(top_k=1, attenuation=0.5))
        by_freq = {round(c.frequency): c.magnitude for c in result}
        assert by_freq[400] == pytest.approx(0.5)

    def test_near_tolerance_edge_barely_attenuated(self):
        options = HarmonicOptions(top_k=1, harmonic_tolerance=0.03, attenuation=0.5)
        # 2.9% off the second harmonic
        candidates = [PeakCandidate(200.0, 1.0), PeakCandidate(400.0 * 1.029, 1.0)]
        result = suppress_harmonics(candidates, options)
        attenuated = [c for c in result if c.frequency > 300][0]
        assert 0.95 < attenuated.magnitude < 1.0

    def test_unrelated_untouched(self):
        candidates = [PeakCandidate(200.0, 1.0), PeakCandidate(317.0, 0.8)]
        result = suppress_harmonics(candidates)
        assert [c.magnitude for c in result] == [1.0, 0.8]

    def test_sorted_output(self):
        candidates = harmonic_series(220.0, 4)
        mags = [c.magnitude for c in suppress_harmonics(candidates)]
        assert mags == sorted(mags, reverse=True)


class TestFundamentalInference:
    """Confidence-scored inference strategy."""

    def test_single_candidate_passes_through(self):
        result = infer_fundamentals([PeakCandidate(440.0, 0.7)])
        assert len(result) == 1
        assert result[0].frequency == 440.0
        assert result[0].confidence == 1.0
        assert not result[0].inferred

    def test_fundamental_beats_harmonics(self):
        candidates = harmonic_series(220.0, 4, [1.0, 0.8, 0.6, 0.4])
        options = HarmonicOptions(min_frequency=150.0)

        result = infer_fundamentals(candidates, options)

        assert [round(c.frequency) for c in result] == [220]
        assert result[0].confidence > 0.5

    def test_subharmonic_of_complete_series_is_inferred(self):
        candidates = harmonic_series(220.0, 4, [1.0, 0.8, 0.6, 0.4])

        result = infer_fundamentals(candidates, HarmonicOptions(min_frequency=80.0))

        assert round(result[0].frequency) == 220
        inferred = [c for c in result if c.inferred]
        assert len(inferred) == 1
        assert inferred[0].frequency == pytest.approx(110.0)
        assert inferred[0].magnitude == pytest.approx(0.5)
        assert inferred[0].confidence == pytest.approx(result[0].confidence * 0.8)

    def test_missing_fundamental(self):
        # harmonics 2..5 of 100 Hz with no energy at 100 Hz
        candidates = [PeakCandidate(f, 1.0) for f in (200.0, 300.0, 400.0, 500.0)]

        result = infer_fundamentals(candidates)

        inferred = [c for c in result if c.inferred]
        assert len(inferred) == 1
        assert inferred[0].frequency == pytest.approx(100.0)

    def test_out_of_range_ignored(self):
        candidates = [PeakCandidate(50.0, 1.0), PeakCandidate(100.0, 1.0), PeakCandidate(150.0, 1.0)]
        result = infer_fundamentals(candidates, HarmonicOptions(min_frequency=80.0))
        assert all(c.frequency >= 80.0 for c in result)

    def test_strict_ratios_limit_harmonic_number(self):
        # 1000 Hz is the 10th harmonic of 100 Hz
        candidates = [PeakCandidate(100.0, 1.0), PeakCandidate(1000.0, 1.0)]
        strict = infer_fundamentals(candidates, HarmonicOptions(strict_harmonic_ratios=True))
        loose = infer_fundamentals(candidates, HarmonicOptions(strict_harmonic_ratios=False))

        assert all(round(c.frequency) != 100 for c in strict)
        assert round(loose[0].frequency) == 100


    def test_sorted_by_confidence(self):
        candidates = harmonic_series(150.0, 5)
        result = infer_fundamentals(candidates)
        confidences = [c.confidence for c in result]
        assert confidences == sorted(confidences, reverse=True)


class TestConfidenceWeighting:
    """Folding confidence into magnitude."""

    def test_weighting(self):
        candidates = [
            PeakCandidate(200.0, 1.0, confidence=2.0),
            PeakCandidate(300.0, 1.0, confidence=1.0),
        ]
        result = weight_by_confidence(candidates, exponent=1.3)

        assert result[0].frequency == 200.0
        assert result[0].magnitude == pytest.approx(1.0)
        assert result[1].magnitude == pytest.approx(0.5**1.3)

    def test_empty(self):
        assert weight_by_confidence([]) == []


class TestStrategySelection:
    """apply_harmonic_strategy dispatches by name."""

    def test_suppression_keeps_all(self):
        candidates = harmonic_series(220.0, 4)
        result = apply_harmonic_strategy(HarmonicStrategy.SUPPRESSION, candidates)
        assert len(result) == 4

    def test_inference_weights_magnitudes(self):
        candidates = harmonic_series(220.0, 4, [1.0, 0.8, 0.6, 0.4])
        result = apply_harmonic_strategy(
            HarmonicStrategy.FUNDAMENTAL_INFERENCE,
            candidates,
            HarmonicOptions(min_frequency=150.0),
        )
        assert len(result) == 1
        assert result[0].confidence == pytest.approx(1.0)
        assert result[0].magnitude == pytest.approx(1.0)

    def test_strategies_differ(self):
        candidates = harmonic_series(220.0, 4)
        inferred = apply_harmonic_strategy(HarmonicStrategy.FUNDAMENTAL_INFERENCE, candidates)
        suppressed = apply_harmonic_strategy(HarmonicStrategy.SUPPRESSION, candidates)
        assert len(inferred) != len(suppressed)
