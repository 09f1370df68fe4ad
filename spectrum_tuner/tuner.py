"""
Tuner readout derived from pipeline results.
"""

from dataclasses import dataclass

from .constants import A4_REFERENCE
from .notes import frequency_to_note
from .pipeline import PipelineResult


@dataclass
class TunerReading:
    """Note display state for one update."""

    valid: bool = False
    note_name: str = ""  # e.g. "A"
    octave: int = 0
    cents: float = 0.0
    frequency: float = 0.0  # averaged frequency in Hz
    in_tune: bool = False  # |cents| within the tolerance


class Tuner:
    """
    Turn a stream of pipeline results into a stable note reading.

    The dominant frequency is averaged exponentially. A frame whose
    strongest candidate is not at least `dominance` times the middle-ranked
    candidate has no clear pitch; it feeds 0 Hz into the average and the
    reading is invalid.
    """

    def __init__(
        self,
        reference: float = A4_REFERENCE,
        average_weight: float = 0.1,
        dominance: float = 2.0,
        cents_tolerance: float = 5.0,
    ):
        """
        Initialize tuner.

        Args:
            reference: Reference frequency for A4 in Hz
            average_weight: Weight of the previous average (0 = no averaging)
            dominance: Required ratio of top to middle-ranked magnitude
            cents_tolerance: Cents deviation still reported as in tune
        """
        self.reference = reference
        self.average_weight = average_weight
        self.dominance = dominance
        self.cents_tolerance = cents_tolerance
        self._average_frequency = 0.0

    @property
    def average_frequency(self) -> float:
        """Current averaged frequency in Hz."""
        return self._average_frequency

    def set_reference(self, freq: float):
        """Set reference frequency for A4."""
        self.reference = freq

    def reset(self):
        """Forget the frequency average."""
        self._average_frequency = 0.0

    def update(self, result: PipelineResult | None) -> TunerReading:
        """
        Fold in one pipeline result.

        Args:
            result: Latest result, None if nothing was published

        Returns:
            TunerReading for display
        """
        frequency = self._dominant_frequency(result)
        valid = frequency > 0

        self._average_frequency = (
            self.average_weight * self._average_frequency + (1 - self.average_weight) * frequency
        )

        note = frequency_to_note(self._average_frequency, self.reference)
        if not valid or note is None or note.octave < 0:
            return TunerReading(frequency=self._average_frequency)

        return TunerReading(
            valid=True,
            note_name=note.name,
            octave=note.octave,
            cents=note.cents,
            frequency=self._average_frequency,
            in_tune=abs(note.cents) <= self.cents_tolerance,
        )

    def _dominant_frequency(self, result: PipelineResult | None) -> float:
        if result is None or not result.candidates:
            return 0.0
        candidates = sorted(result.candidates, key=lambda c: c.magnitude, reverse=True)
        top = candidates[0]
        if top.frequency <= 0:
            return 0.0
        if len(candidates) > 1:
            middle = candidates[len(candidates) // 2]
            if top.magnitude < self.dominance * middle.magnitude:
                return 0.0
        return top.frequency
