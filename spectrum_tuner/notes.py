"""
Equal-temperament note naming.
"""

from typing import NamedTuple

import numpy as np

from .constants import A4_REFERENCE, C0_FREQUENCY, NOTE_NAMES, OCTAVE


class Note(NamedTuple):
    """Nearest equal-tempered note to a frequency."""
    name: str  # e.g. "A"
    octave: int  # e.g. 4
    cents: float  # deviation from the note, -50..50
    ref_frequency: float  # frequency of the note itself


def frequency_to_note_number(frequency: float, reference: float = A4_REFERENCE) -> tuple[int, float]:
    """Convert frequency to MIDI note number and cents deviation."""
    if frequency <= 0:
        return 0, 0.0
    note = int(round(OCTAVE * np.log2(frequency / reference) + 69))
    cents = 1200.0 * np.log2(frequency / note_frequency(note, reference))
    return note, float(cents)


def note_number_to_name(note: int) -> tuple[str, int]:
    """Convert MIDI note number to note name and octave."""
    return NOTE_NAMES[note % OCTAVE], note // OCTAVE - 1


def note_frequency(note: int, reference: float = A4_REFERENCE) -> float:
    """Equal-tempered frequency of a MIDI note number."""
    return float(reference * 2.0 ** ((note - 69) / OCTAVE))


def frequency_to_note(frequency: float, reference: float = A4_REFERENCE) -> Note | None:
    """
    Find the nearest note to a frequency.

    Returns:
        Note, or None for a non-positive frequency
    """
    if not frequency > 0:
        return None
    number, cents = frequency_to_note_number(frequency, reference)
    name, octave = note_number_to_name(number)
    return Note(name, octave, cents, note_frequency(number, reference))


def octave_of(frequency: float) -> int | None:
    """Octave number counted from C0, None for a non-positive frequency."""
    if not frequency > 0:
        return None
    return int(np.floor(np.log2(frequency / C0_FREQUENCY)))
