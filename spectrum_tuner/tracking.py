"""
Frame-to-frame tracking of peak candidates.

Two trackers are provided:

NearestFrequencyTracker pulls each candidate towards persistent tracks within
a 5% frequency ratio, with a pull that fades with distance and grows with the
track's magnitude relative to the candidate's.

KalmanTracker runs one scalar Kalman filter per track. Tracks are identified
by an ID that survives reordering of the candidate list, so a filter always
follows the same partial.

Both trackers own their state; call reset() to start over.
"""

import math
from dataclasses import dataclass, replace

from .peak_detector import PeakCandidate


@dataclass
class Track:
    """A persistent frequency trajectory."""

    frequency: float
    magnitude: float
    track_id: int
    missed: int = 0  # consecutive frames without a matching candidate


@dataclass
class ScalarKalmanFilter:
    """One-dimensional Kalman filter with a constant-value model."""

    estimate: float
    uncertainty: float = 1.0
    process_noise: float = 0.1
    measurement_noise: float = 1.0

    def update(self, measurement: float) -> float:
        """Fold in one measurement and return the new estimate."""
        predicted_uncertainty = self.uncertainty + self.process_noise
        gain = predicted_uncertainty / (predicted_uncertainty + self.measurement_noise)
        self.estimate += gain * (measurement - self.estimate)
        self.uncertainty = (1 - gain) * predicted_uncertainty
        return self.estimate


class NearestFrequencyTracker:
    """
    Smooth candidate frequencies against tracks from earlier frames.
    """

    def __init__(
        self,
        smoothing_factor: float = 0.1,
        max_ratio: float = 1.05,
        distance_scale: float = 100.0,
        max_missed_frames: int = 0,
    ):
        """
        Initialize tracker.

        Args:
            smoothing_factor: Pull of a track on a candidate, 0 disables it
            max_ratio: Largest frequency ratio between a track and a match
            distance_scale: Hz over which the pull decays by a factor of e
            max_missed_frames: Frames an unmatched track survives (0 drops
                it in the frame it is not matched)
        """
        self.smoothing_factor = smoothing_factor
        self.max_ratio = max_ratio
        self.distance_scale = distance_scale
        self.max_missed_frames = max_missed_frames

        self._tracks: list[Track] = []
        self._next_id = 0

    @property
    def tracks(self) -> list[Track]:
        """Copies of the current tracks."""
        return [replace(t) for t in self._tracks]

    def reset(self):
        """Forget all tracks."""
        self._tracks = []
        self._next_id = 0

    def update(self, candidates: list[PeakCandidate]) -> list[PeakCandidate]:
        """
        Smooth one frame of candidates and rebuild the tracks.

        Args:
            candidates: This frame's candidates, strongest first

        Returns:
            New candidates with smoothed frequencies, in input order
        """
        result = [replace(c) for c in candidates]
        tracks = list(self._tracks)
        # Unblended (frequency, magnitude) of every candidate matching a track
        matches: list[list[tuple[float, float]]] = [[] for _ in tracks]

        for candidate in result:
            raw = (candidate.frequency, candidate.magnitude)
            found = False
            for j, track in enumerate(tracks):
                if not self._within_ratio(candidate.frequency, track.frequency):
                    continue
                found = True
                matches[j].append(raw)
                strength = self._strength(candidate, track)
                candidate.frequency = strength * track.frequency + (1 - strength) * candidate.frequency
            if not found:
                tracks.append(self._new_track(*raw))
                matches.append([raw])

        self._tracks = self._rebuild(tracks, matches)
        return result

    def _within_ratio(self, a: float, b: float) -> bool:
        low, high = min(a, b), max(a, b)
        if low <= 0:
            return False
        return high / low <= self.max_ratio

    def _strength(self, candidate: PeakCandidate, track: Track) -> float:
        if candidate.magnitude <= 0:
            return 1.0 if self.smoothing_factor > 0 else 0.0
        distance = abs(candidate.frequency - track.frequency)
        strength = (
            self.smoothing_factor
            * track.magnitude
            / candidate.magnitude
            * 1.5
            * math.exp(-distance / self.distance_scale)
        )
        return min(max(strength, 0.0), 1.0)

    def _new_track(self, frequency: float, magnitude: float) -> Track:
        track = Track(frequency=frequency, magnitude=magnitude, track_id=self._next_id)
        self._next_id += 1
        return track

    def _rebuild(self, tracks: list[Track], matches: list[list[tuple[float, float]]]) -> list[Track]:
        rebuilt = []
        for track, matched in zip(tracks, matches):
            total_magnitude = sum(m for _, m in matched)
            if total_magnitude > 0:
                rebuilt.append(
                    Track(
                        frequency=sum(f * m for f, m in matched) / total_magnitude,
                        magnitude=total_magnitude / len(matched),
                        track_id=track.track_id,
                    )
                )
            elif not matched and track.missed < self.max_missed_frames:
                rebuilt.append(replace(track, missed=track.missed + 1))
        return rebuilt


class KalmanTracker:
    """
    Kalman-filter candidate frequencies across frames.

    Each track is matched to the closest unclaimed candidate within
    max_delta_hz of its estimate; the candidate's frequency is replaced by
    the filtered one. Unmatched candidates seed new tracks, unmatched tracks
    are dropped. An empty frame clears all tracks.
    """

    def __init__(
        self,
        max_delta_hz: float = 40.0,
        process_noise: float = 0.1,
        measurement_noise: float = 1.0,
        initial_uncertainty: float = 1.0,
    ):
        self.max_delta_hz = max_delta_hz
        self.process_noise = process_noise
        self.measurement_noise = measurement_noise
        self.initial_uncertainty = initial_uncertainty

        self._tracks: list[Track] = []
        self._filters: dict[int, ScalarKalmanFilter] = {}
        self._next_id = 0

    @property
    def tracks(self) -> list[Track]:
        """Copies of the current tracks, strongest first."""
        return [replace(t) for t in self._tracks]

    def filter_for(self, track_id: int) -> ScalarKalmanFilter | None:
        """Filter state of a track, None if the track is gone."""
        return self._filters.get(track_id)

    def reset(self):
        """Forget all tracks and filters."""
        self._tracks = []
        self._filters = {}
        self._next_id = 0

    def update(self, candidates: list[PeakCandidate]) -> list[PeakCandidate]:
        """
        Filter one frame of candidates.

        Args:
            candidates: This frame's candidates

        Returns:
            New candidates with filtered frequencies, strongest first
        """
        result = [replace(c) for c in candidates]
        if not result:
            self.reset()
            return result

        if not self._tracks:
            self._tracks = [self._seed(c) for c in result]
            result.sort(key=lambda c: c.magnitude, reverse=True)
            return result

        claimed: dict[int, Track] = {}
        for track in self._tracks:
            best_index = None
            best_distance = self.max_delta_hz
            for i, candidate in enumerate(result):
                if i in claimed:
                    continue
                distance = abs(candidate.frequency - track.frequency)
                if distance <= best_distance:
                    best_index = i
                    best_distance = distance
            if best_index is None:
                self._filters.pop(track.track_id, None)
                continue

            candidate = result[best_index]
            candidate.frequency = self._filters[track.track_id].update(candidate.frequency)
            claimed[best_index] = Track(candidate.frequency, candidate.magnitude, track.track_id)

        tracks = list(claimed.values())
        for i, candidate in enumerate(result):
            if i not in claimed:
                tracks.append(self._seed(candidate))

        tracks.sort(key=lambda t: t.magnitude, reverse=True)
        self._tracks = tracks
        result.sort(key=lambda c: c.magnitude, reverse=True)
        return result

    def _seed(self, candidate: PeakCandidate) -> Track:
        track_id = self._next_id
        self._next_id += 1
        self._filters[track_id] = ScalarKalmanFilter(
            estimate=candidate.frequency,
            uncertainty=self.initial_uncertainty,
            process_noise=self.process_noise,
            measurement_noise=self.measurement_noise,
        )
        return Track(candidate.frequency, candidate.magnitude, track_id)
