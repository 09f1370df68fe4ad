"""
Frame sources for the analysis loop.

A frame source has a `sample_rate` attribute and a `read_frame()` method
returning the latest `frame_size` samples. read_frame() must return
promptly; it never blocks waiting for audio.
"""

import logging
import threading

import numpy as np

from .constants import FRAME_SIZE, SAMPLE_RATE

logger = logging.getLogger(__name__)


class SoundDeviceSource:
    """
    Live microphone input through sounddevice.

    The stream callback appends blocks to a ring buffer; read_frame()
    copies out the most recent frame. Until enough audio has arrived the
    frame is zero-filled at the start.
    """

    def __init__(
        self,
        sample_rate: int = SAMPLE_RATE,
        frame_size: int = FRAME_SIZE,
        block_size: int = 1024,
        device: int | str | None = None,
        gain: float = 1.0,
    ):
        """
        Initialize source.

        Args:
            sample_rate: Capture rate in Hz
            frame_size: Samples returned by read_frame()
            block_size: Samples per stream callback
            device: sounddevice input device, None for the default
            gain: Fixed gain applied to incoming audio
        """
        self.sample_rate = sample_rate
        self.frame_size = frame_size
        self.block_size = block_size
        self.device = device
        self.gain = gain

        self._ring = np.zeros(frame_size, dtype=np.float64)
        self._lock = threading.Lock()
        self._stream = None
        self._rms = 0.0
        self._peak = 0.0

    @property
    def running(self) -> bool:
        """True while the input stream is open."""
        return self._stream is not None

    @property
    def levels(self) -> tuple[float, float]:
        """(rms, peak) of the last block, before gain."""
        return self._rms, self._peak

    def start(self):
        """
        Open and start the input stream.

        Raises:
            sounddevice.PortAudioError: If the device cannot be opened
        """
        if self._stream is not None:
            return
        import sounddevice as sd

        stream = sd.InputStream(
            device=self.device,
            samplerate=self.sample_rate,
            blocksize=self.block_size,
            channels=1,
            dtype=np.float32,
            callback=self._audio_callback,
        )
        stream.start()
        self._stream = stream
        logger.info(
            "Audio input started (device=%s, %d Hz, block %d)",
            self.device,
            self.sample_rate,
            self.block_size,
        )

    def stop(self):
        """Stop and close the input stream."""
        if self._stream is None:
            return
        self._stream.stop()
        self._stream.close()
        self._stream = None
        logger.info("Audio input stopped")

    def read_frame(self) -> np.ndarray:
        """Most recent frame_size samples."""
        with self._lock:
            return self._ring.copy()

    def _audio_callback(self, indata, frames, time, status):
        if status:
            logger.warning("Audio input status: %s", status)

        raw = np.asarray(indata[:, 0], dtype=np.float64)
        self.push(raw)
        if len(raw):
            self._rms = float(np.sqrt(np.mean(raw**2)))
            self._peak = float(np.max(np.abs(raw)))

    def push(self, block: np.ndarray):
        """Append a block of samples (gain is applied here)."""
        block = np.asarray(block, dtype=np.float64) * self.gain
        n = len(block)
        with self._lock:
            if n >= self.frame_size:
                self._ring[:] = block[-self.frame_size :]
            elif n:
                self._ring[:-n] = self._ring[n:]
                self._ring[-n:] = block

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()


class ArraySource:
    """
    Play back a recorded signal frame by frame.

    Each read_frame() returns the next frame_size samples and advances by
    hop_size. Past the end the frame is zero-padded; `exhausted` becomes
    True once a frame starts beyond the signal.
    """

    def __init__(
        self,
        signal: np.ndarray,
        sample_rate: int = SAMPLE_RATE,
        frame_size: int = FRAME_SIZE,
        hop_size: int | None = None,
        loop: bool = False,
    ):
        self.sample_rate = sample_rate
        self.frame_size = frame_size
        self.hop_size = hop_size or frame_size
        self.loop = loop
        self._signal = np.asarray(signal, dtype=np.float64)
        self._position = 0

    @property
    def exhausted(self) -> bool:
        """True when no unread samples are left."""
        return not self.loop and self._position >= len(self._signal)

    def rewind(self):
        """Start again from the beginning."""
        self._position = 0

    def read_frame(self) -> np.ndarray:
        """Next frame_size samples."""
        if self.loop and len(self._signal) and self._position >= len(self._signal):
            self._position = 0

        frame = np.zeros(self.frame_size, dtype=np.float64)
        chunk = self._signal[self._position : self._position + self.frame_size]
        frame[: len(chunk)] = chunk
        self._position += self.hop_size
        return frame
