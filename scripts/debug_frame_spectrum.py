"""
Debug script: Visualize what the pipeline sees at each frame of a recording.

Each plot shows the raw amplitude spectrum of one frame, zoomed around the
strongest candidate, with every published candidate marked. Plots for all
interpolation methods are overlaid so their estimates can be compared.

Usage:
    python scripts/debug_frame_spectrum.py recording.npy --frames 10
    python scripts/debug_frame_spectrum.py --tone 440.37
"""

import argparse
import logging

import matplotlib
import numpy as np

matplotlib.use('Agg')
import matplotlib.pyplot as plt

from spectrum_tuner.audio_source import ArraySource
from spectrum_tuner.config import AnalysisConfig, InterpolationMethod
from spectrum_tuner.constants import FRAME_SIZE, SAMPLE_RATE
from spectrum_tuner.pipeline import SpectralPipeline

METHOD_COLORS = {
    InterpolationMethod.PARABOLIC: 'red',
    InterpolationMethod.QUINN: 'orange',
    InterpolationMethod.QUINN_COMPLEX: 'green',
    InterpolationMethod.JACOBSEN: 'purple',
}


def plot_frame_spectrum(audio, output_prefix, num_frames=10, hop_size=FRAME_SIZE // 4, span_hz=60.0):
    """Plot spectrum and per-method candidates for each frame."""
    pipelines = {
        method: SpectralPipeline(AnalysisConfig(interpolation=method, frame_smoothing=0.0))
        for method in METHOD_COLORS
    }
    sources = {
        method: ArraySource(audio, frame_size=FRAME_SIZE, hop_size=hop_size)
        for method in METHOD_COLORS
    }

    for frame_num in range(num_frames):
        results = {
            method: pipelines[method].process(sources[method].read_frame())
            for method in METHOD_COLORS
        }
        reference = results[InterpolationMethod.PARABOLIC]
        freqs, mags = reference.spectrum_data

        if reference.valid:
            center = reference.candidates[0].frequency
        else:
            center = freqs[int(np.argmax(mags))]
        freq_min, freq_max = center - span_hz, center + span_hz

        fig, ax = plt.subplots(figsize=(12, 5))
        valid = (freqs >= freq_min) & (freqs <= freq_max)
        ax.semilogy(freqs[valid], np.maximum(mags[valid], 1e-9), 'b.-', linewidth=0.5, alpha=0.8)

        lines = []
        for method, result in results.items():
            for candidate in result.candidates:
                if freq_min <= candidate.frequency <= freq_max:
                    ax.axvline(candidate.frequency, color=METHOD_COLORS[method], linewidth=1.2, alpha=0.7)
            if result.valid:
                lines.append(f'{method.value}: {result.candidates[0].frequency:.2f}')

        ax.set_title(f'Frame {frame_num} - ' + ', '.join(lines))
        ax.set_xlabel('Frequency (Hz)')
        ax.set_ylabel('Amplitude (log)')
        ax.grid(True, alpha=0.3)

        plt.tight_layout()
        filename = f'{output_prefix}_frame_{frame_num:02d}.png'
        plt.savefig(filename, dpi=100)
        plt.close()
        print(f'Saved: {filename}')


def main():
    parser = argparse.ArgumentParser(description="Plot per-frame spectra and candidates")
    parser.add_argument("recording", nargs="?", help="Mono .npy recording at 44.1 kHz")
    parser.add_argument("--tone", type=float, default=440.37, help="Synthetic tone when no recording is given")
    parser.add_argument("--frames", type=int, default=10)
    parser.add_argument("--output", default="debug_spectrum")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)

    if args.recording:
        audio = np.load(args.recording).astype(np.float64)
    else:
        t = np.arange(FRAME_SIZE * 4) / SAMPLE_RATE
        audio = 0.8 * np.sin(2 * np.pi * args.tone * t)

    plot_frame_spectrum(audio, args.output, num_frames=args.frames)
    print('Done!')


if __name__ == '__main__':
    main()
