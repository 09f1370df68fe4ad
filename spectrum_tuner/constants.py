"""
Shared constants for spectral pitch analysis.
"""

SAMPLE_RATE = 44100
FRAME_SIZE = 4096
PADDING_FACTOR = 1

A4_REFERENCE = 440.0
C0_FREQUENCY = 16.3515978313
NOTE_NAMES = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]
OCTAVE = 12

# Audible band enforced at the peak detector boundary
MIN_AUDIBLE_HZ = 20.0
MAX_AUDIBLE_HZ = 22000.0

# Candidate list caps
MAX_DETECTED_PEAKS = 100
MAX_CANDIDATES = 30

# Lowest frequency surviving normalization
MIN_OUTPUT_FREQUENCY = 30.0

UPDATE_RATE = 60  # analysis cycles per second
HISTORY_SIZE = 300
