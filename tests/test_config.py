"""
Tests for AnalysisConfig validation and construction.
"""

import logging

import pytest

from spectrum_tuner.config import AnalysisConfig, InterpolationMethod, Stage
from spectrum_tuner.harmonics import HarmonicOptions, HarmonicStrategy
from spectrum_tuner.interpolation import (
    jacobsen_interpolate,
    log_parabolic_interpolate,
    parabolic_interpolate,
)
from spectrum_tuner.peak_detector import Strictness


class TestInterpolationMethod:
    """Method to detector mapping."""

    def test_strictness(self):
        assert InterpolationMethod.NONE.strictness == Strictness.NONE
        assert InterpolationMethod.PARABOLIC.strictness == Strictness.LOOSE
        assert InterpolationMethod.PARABOLIC_LOG.strictness == Strictness.LOOSE
        assert InterpolationMethod.QUINN.strictness == Strictness.STRICT
        assert InterpolationMethod.QUINN_COMPLEX.strictness == Strictness.STRICT
        assert InterpolationMethod.JACOBSEN.strictness == Strictness.STRICT

    def test_interpolator(self):
        assert InterpolationMethod.NONE.interpolator is None
        assert InterpolationMethod.PARABOLIC.interpolator is parabolic_interpolate
        assert InterpolationMethod.PARABOLIC_LOG.interpolator is log_parabolic_interpolate
        assert InterpolationMethod.JACOBSEN.interpolator is jacobsen_interpolate

    def test_values(self):
        assert InterpolationMethod("quinn-complex") == InterpolationMethod.QUINN_COMPLEX


class TestDefaults:
    """Default configuration."""

    def test_defaults(self):
        config = AnalysisConfig()
        assert config.interpolation == InterpolationMethod.PARABOLIC
        assert config.window == "hann"
        assert config.transform_size == 4096
        assert config.stages == (Stage.HARMONIC_FILTER, Stage.NORMALIZE, Stage.TRACK, Stage.KALMAN)
        assert not config.harmonic_filtering
        assert not config.kalman

    def test_transform_size(self):
        assert AnalysisConfig(frame_size=1000, padding_factor=3).transform_size == 3000

    def test_frozen(self):
        config = AnalysisConfig()
        with pytest.raises(AttributeError):
            config.power = 2.0


class TestValidation:
    """Invalid options raise ValueError naming the option."""

    @pytest.mark.parametrize(
        "option, value",
        [
            ("sample_rate", 0),
            ("frame_size", 2),
            ("padding_factor", 0),
            ("padding_factor", 1.5),
            ("window", "triangle"),
            ("min_magnitude", -1.0),
            ("power", 0.0),
            ("frame_smoothing", 1.0),
            ("track_smoothing", -0.1),
            ("max_candidates", 0),
            ("kalman_max_delta_hz", 0.0),
            ("stages", (Stage.NORMALIZE, Stage.NORMALIZE)),
        ],
    )
    def test_invalid(self, option, value):
        with pytest.raises(ValueError, match=option):
            AnalysisConfig(**{option: value})

    def test_magnitude_quinn_needs_tapered_window(self):
        with pytest.raises(ValueError, match="window"):
            AnalysisConfig(interpolation=InterpolationMethod.QUINN, window="rectangular")
        AnalysisConfig(interpolation=InterpolationMethod.QUINN_COMPLEX, window="rectangular")
        AnalysisConfig(interpolation=InterpolationMethod.QUINN, window="hamming")

    def test_replace_validates(self):
        with pytest.raises(ValueError):
            AnalysisConfig().replace(power=-1.0)

    def test_replace(self):
        config = AnalysisConfig().replace(kalman=True)
        assert config.kalman
        assert config.window == "hann"


class TestFromMapping:
    """Flat option mappings."""

    def test_string_enums(self):
        config = AnalysisConfig.from_mapping(
            {
                "interpolation": "jacobsen",
                "harmonic_strategy": "suppression",
                "stages": ["normalize", "harmonic-filter"],
                "harmonic_filtering": True,
            }
        )
        assert config.interpolation == InterpolationMethod.JACOBSEN
        assert config.harmonic_strategy == HarmonicStrategy.SUPPRESSION
        assert config.stages == (Stage.NORMALIZE, Stage.HARMONIC_FILTER)
        assert config.harmonic_filtering

    def test_harmonic_options_mapping(self):
        config = AnalysisConfig.from_mapping({"harmonic_options": {"top_k": 5}})
        assert config.harmonic_options == HarmonicOptions(top_k=5)

    def test_unknown_keys_warn(self, caplog):
        with caplog.at_level(logging.WARNING, logger="spectrum_tuner.config"):
            config = AnalysisConfig.from_mapping({"fftSize": 8192, "power": 2.0})
        assert config.power == 2.0
        assert "fftSize" in caplog.text

    def test_invalid_enum_value(self):
        with pytest.raises(ValueError, match="interpolation"):
            AnalysisConfig.from_mapping({"interpolation": "cubic"})
