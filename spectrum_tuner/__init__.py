"""
spectrum_tuner - Real-time spectral pitch extraction with sub-bin peak interpolation
"""

from .audio_source import ArraySource, SoundDeviceSource
from .config import AnalysisConfig, InterpolationMethod, Stage
from .constants import A4_REFERENCE, FRAME_SIZE, NOTE_NAMES, SAMPLE_RATE
from .engine import AnalysisLoop, ResultSlot
from .harmonics import HarmonicOptions, HarmonicStrategy
from .peak_detector import PeakCandidate, Strictness
from .pipeline import PipelineResult, PitchEstimate, SpectralPipeline
from .tracking import KalmanTracker, NearestFrequencyTracker
from .tuner import Tuner, TunerReading

__version__ = "0.1.0"
__all__ = [
    "SpectralPipeline",
    "PipelineResult",
    "PitchEstimate",
    "AnalysisConfig",
    "InterpolationMethod",
    "Stage",
    "HarmonicOptions",
    "HarmonicStrategy",
    "PeakCandidate",
    "Strictness",
    "NearestFrequencyTracker",
    "KalmanTracker",
    "AnalysisLoop",
    "ResultSlot",
    "SoundDeviceSource",
    "ArraySource",
    "Tuner",
    "TunerReading",
    "SAMPLE_RATE",
    "FRAME_SIZE",
    "A4_REFERENCE",
    "NOTE_NAMES",
]
