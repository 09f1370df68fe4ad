"""
Live terminal tuner.

Captures the default (or selected) input device, runs the analysis loop at
the configured rate and prints the tuner reading and strongest candidates.

Usage:
    python scripts/live_tuner.py
    python scripts/live_tuner.py --device 2 --interpolation jacobsen --harmonics suppression
"""

import argparse
import logging
import sys
import time

from spectrum_tuner.audio_source import SoundDeviceSource
from spectrum_tuner.config import AnalysisConfig, InterpolationMethod
from spectrum_tuner.constants import UPDATE_RATE
from spectrum_tuner.engine import AnalysisLoop
from spectrum_tuner.harmonics import HarmonicStrategy
from spectrum_tuner.pipeline import SpectralPipeline
from spectrum_tuner.tuner import Tuner


def list_devices() -> None:
    """Print available audio devices."""
    import sounddevice as sd

    print(sd.query_devices())


def format_reading(reading, result) -> str:
    """One status line for the terminal."""
    if not reading.valid:
        note = "  -  "
    else:
        marker = "*" if reading.in_tune else " "
        note = f"{reading.note_name}{reading.octave} {reading.cents:+5.1f}c {marker}"

    peaks = ""
    if result is not None and result.candidates:
        peaks = "  ".join(f"{c.frequency:7.1f}Hz {c.magnitude:.2f}" for c in result.candidates[:3])
    return f"{note:<16} {reading.frequency:8.2f} Hz | {peaks}"


def run(args: argparse.Namespace) -> None:
    """Start capture and the analysis loop, print readings until Ctrl+C."""
    options = {
        "interpolation": args.interpolation,
        "window": args.window,
        "kalman": args.kalman,
    }
    if args.harmonics:
        options["harmonic_filtering"] = True
        options["harmonic_strategy"] = args.harmonics
    config = AnalysisConfig.from_mapping(options)

    source = SoundDeviceSource(
        sample_rate=config.sample_rate,
        frame_size=config.frame_size,
        device=args.device,
        gain=args.gain,
    )
    loop = AnalysisLoop(SpectralPipeline(config), source, interval=1.0 / args.rate)
    tuner = Tuner(reference=args.reference)

    with source:
        loop.start()
        try:
            while True:
                time.sleep(0.1)
                result = loop.slot.latest()
                reading = tuner.update(result)
                sys.stdout.write("\r" + format_reading(reading, result) + " " * 4)
                sys.stdout.flush()
        finally:
            loop.stop()
            print(f"\n{loop.cycle_count} cycles, {loop.updates_per_second:.0f} updates/s")


def main():
    parser = argparse.ArgumentParser(description="Live spectral tuner (mic -> terminal)")
    parser.add_argument("--device", type=int, default=None, help="Input device index (see --list-devices)")
    parser.add_argument("--list-devices", action="store_true", help="List audio devices and exit")
    parser.add_argument(
        "--interpolation",
        default=InterpolationMethod.PARABOLIC.value,
        choices=[m.value for m in InterpolationMethod],
    )
    parser.add_argument("--window", default="hann")
    parser.add_argument(
        "--harmonics",
        default=None,
        choices=[s.value for s in HarmonicStrategy],
        help="Enable harmonic filtering with this strategy",
    )
    parser.add_argument("--kalman", action="store_true", help="Kalman-filter candidate frequencies")
    parser.add_argument("--rate", type=float, default=UPDATE_RATE, help="Analysis cycles per second")
    parser.add_argument("--gain", type=float, default=1.0, help="Input gain")
    parser.add_argument("--reference", type=float, default=440.0, help="A4 reference in Hz")
    parser.add_argument("--verbose", "-v", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.list_devices:
        list_devices()
        return
    try:
        run(args)
    except KeyboardInterrupt:
        print("\nBye!")


if __name__ == "__main__":
    main()
