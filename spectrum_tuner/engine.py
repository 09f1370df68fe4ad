"""
Periodic analysis loop.

AnalysisLoop reads one frame from a frame source per cycle, runs it
through a SpectralPipeline and publishes the immutable result to a
ResultSlot. Cycles never overlap: a cycle that overruns its interval
makes the next one start late, nothing is cancelled.

Consumers (display, tuner) read the slot from their own thread. The
pipeline, its trackers and its smoothing buffer are only touched by the
loop thread; configuration changes are queued and applied between cycles.
"""

import logging
import threading
import time
from collections import deque
from typing import Callable

from .config import AnalysisConfig
from .constants import HISTORY_SIZE, UPDATE_RATE
from .pipeline import PipelineResult, PitchEstimate, SpectralPipeline

logger = logging.getLogger(__name__)

# Shortest wait between checks while paused
MIN_IDLE_INTERVAL = 0.1


class ResultSlot:
    """
    Latest-result hand-off between one writer and one reader.

    Results are immutable, so the reader either sees the previous result
    or the new one, never a partially built one.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._result: PipelineResult | None = None
        self._sequence = 0
        self._taken = 0

    @property
    def sequence(self) -> int:
        """Number of results published so far."""
        return self._sequence

    def publish(self, result: PipelineResult):
        """Replace the current result."""
        with self._lock:
            self._result = result
            self._sequence += 1

    def latest(self) -> PipelineResult | None:
        """Most recent result, whether or not it was read before."""
        with self._lock:
            return self._result

    def take(self) -> PipelineResult | None:
        """Most recent result if it has not been taken yet, otherwise None."""
        with self._lock:
            if self._sequence == self._taken:
                return None
            self._taken = self._sequence
            return self._result


class AnalysisLoop:
    """
    Fixed-rate driver for a SpectralPipeline.
    """

    def __init__(
        self,
        pipeline: SpectralPipeline,
        source,
        interval: float = 1.0 / UPDATE_RATE,
        history_size: int = HISTORY_SIZE,
        is_active: Callable[[], bool] | None = None,
        slot: ResultSlot | None = None,
        warning_interval: float = 5.0,
    ):
        """
        Initialize loop.

        Args:
            pipeline: Pipeline run once per cycle
            source: Frame source with read_frame()
            interval: Nominal cycle period in seconds
            history_size: Number of per-cycle results kept
            is_active: Predicate checked before each cycle; the loop idles
                while it returns False
            slot: Where results are published, a new ResultSlot if None
            warning_interval: Minimum seconds between repeated overrun or
                failure messages
        """
        if interval <= 0:
            raise ValueError(f"Invalid value for interval: {interval!r}")

        self.pipeline = pipeline
        self.source = source
        self.interval = interval
        self.is_active = is_active
        self.slot = slot or ResultSlot()
        self.warning_interval = warning_interval

        # None marks a cycle without candidates
        self.history: deque[tuple[PitchEstimate, ...] | None] = deque(maxlen=history_size)
        self.current_octave = 1
        self.average_duration = 0.0  # seconds
        self.average_duration_weight = 0.1
        self.cycle_count = 0
        self.overrun_count = 0
        self.failure_count = 0

        self._pending_config: AnalysisConfig | None = None
        self._config_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._last_message: dict[str, float] = {}
        self._suppressed: dict[str, int] = {}

    @property
    def running(self) -> bool:
        """True while the loop thread is alive."""
        return self._thread is not None and self._thread.is_alive()

    @property
    def updates_per_second(self) -> float:
        """Achievable cycle rate, capped at the nominal rate."""
        max_rate = 1.0 / self.interval
        if self.average_duration <= 0:
            return max_rate
        return min(max_rate, 1.0 / self.average_duration)

    def update_config(self, config: AnalysisConfig):
        """Queue a configuration change for the next cycle."""
        with self._config_lock:
            self._pending_config = config

    def step(self) -> PipelineResult:
        """Run one analysis cycle on the calling thread."""
        self._apply_pending_config()

        start = time.perf_counter()
        frame = self.source.read_frame()
        result = self.pipeline.process(frame)
        duration = time.perf_counter() - start

        self.cycle_count += 1
        self.average_duration = (
            (1 - self.average_duration_weight) * self.average_duration
            + self.average_duration_weight * duration
        )

        if result.valid:
            self.history.append(result.candidates)
            if result.octave is not None:
                self.current_octave = result.octave
        else:
            self.history.append(None)

        self.slot.publish(result)

        if duration > self.interval:
            self._report_overrun(duration)
        return result

    def start(self):
        """Start the loop on a background thread."""
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="analysis-loop", daemon=True)
        self._thread.start()
        logger.info("Analysis loop started (interval %.1f ms)", self.interval * 1000)

    def stop(self, timeout: float | None = 2.0):
        """Stop the loop and wait for the current cycle to finish."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
            logger.info(
                "Analysis loop stopped after %d cycles (avg %.2f ms)",
                self.cycle_count,
                self.average_duration * 1000,
            )

    def _run(self):
        next_time = time.monotonic()
        while not self._stop_event.is_set():
            if self.is_active is not None and not self.is_active():
                self._stop_event.wait(max(MIN_IDLE_INTERVAL, self.interval))
                next_time = time.monotonic()
                continue

            try:
                self.step()
            except Exception:
                self.failure_count += 1
                suppressed = self._throttle("failure")
                if suppressed is not None:
                    logger.exception(
                        "Analysis cycle failed (%d similar errors suppressed)", suppressed
                    )

            next_time += self.interval
            delay = next_time - time.monotonic()
            if delay > 0:
                self._stop_event.wait(delay)
            else:
                # Late: start the next cycle now, without catching up
                next_time = time.monotonic()

    def _apply_pending_config(self):
        with self._config_lock:
            config = self._pending_config
            self._pending_config = None
        if config is not None:
            self.pipeline.configure(config)
            logger.info("Applied new analysis configuration")

    def _report_overrun(self, duration: float):
        self.overrun_count += 1
        suppressed = self._throttle("overrun")
        if suppressed is None:
            return
        logger.warning(
            "Analysis cycle took %.1f ms, longer than the %.1f ms interval (%d similar warnings suppressed)",
            duration * 1000,
            self.interval * 1000,
            suppressed,
        )

    def _throttle(self, kind: str) -> int | None:
        """
        Rate-limit messages of one kind.

        Returns:
            Number of messages suppressed since the last one that went out,
            or None if this one is suppressed too
        """
        now = time.monotonic()
        last = self._last_message.get(kind)
        if last is not None and now - last < self.warning_interval:
            self._suppressed[kind] = self._suppressed.get(kind, 0) + 1
            return None
        self._last_message[kind] = now
        return self._suppressed.pop(kind, 0)
