"""
Track-duration corroboration for album matches.

Two tolerance models are available:

- ``percentage``: ``clamp(avg * pct, min, max)``, with pct/min/max taken
  from the strictness level;
- ``empirical``: a fixed tolerance per length category, from the spread of
  durations observed between real rips and catalog entries.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence, Tuple

from .config import DurationSettings
from .models import DurationComparison, LengthCategory, LocalTrack, RemoteTrack, TrackComparison

logger = logging.getLogger(__name__)

STRICTNESS: Dict[str, Tuple[float, float, float]] = {
    "strict": (0.02, 2.0, 8.0),
    "normal": (0.05, 3.0, 15.0),
    "lenient": (0.08, 5.0, 30.0),
}
EMPIRICAL_TOLERANCE: Dict[LengthCategory, float] = {
    LengthCategory.SHORT: 3.0,
    LengthCategory.NORMAL: 5.0,
    LengthCategory.LONG: 8.0,
    LengthCategory.EPIC: 15.0,
}
CONFIDENCE_BANDS: Tuple[Tuple[float, int], ...] = (
    (1.0, 95),
    (2.0, 90),
    (3.0, 85),
    (5.0, 75),
    (8.0, 60),
    (15.0, 40),
)


def length_category(seconds: float) -> LengthCategory:
    if seconds < 120:
        return LengthCategory.SHORT
    if seconds < 420:
        return LengthCategory.NORMAL
    if seconds < 600:
        return LengthCategory.LONG
    return LengthCategory.EPIC


def duration_confidence(percent_diff: float) -> int:
    if percent_diff <= 0:
        return 100
    for limit, confidence in CONFIDENCE_BANDS:
        if percent_diff <= limit:
            return confidence
    return 20


def tolerance_for(avg_seconds: float, mode: str = "percentage", strictness: str = "normal") -> float:
    if mode == "empirical":
        return EMPIRICAL_TOLERANCE[length_category(avg_seconds)]
    pct, minimum, maximum = STRICTNESS[strictness]
    return max(minimum, min(maximum, avg_seconds * pct))


def compare_track(
    local_seconds: float,
    remote_seconds: float,
    mode: str = "percentage",
    strictness: str = "normal",
) -> TrackComparison:
    diff = abs(local_seconds - remote_seconds)
    avg = (local_seconds + remote_seconds) / 2
    percent = diff / avg * 100 if avg > 0 else 0.0
    return TrackComparison(
        local_duration_sec=local_seconds,
        remote_duration_sec=remote_seconds,
        diff_sec=diff,
        percent_diff=percent,
        tolerance_sec=tolerance_for(avg, mode, strictness),
        confidence=duration_confidence(percent),
        length_category=length_category(avg),
    )


class DurationValidator:
    def __init__(self, settings: Optional[DurationSettings] = None) -> None:
        self.settings = settings or DurationSettings()

    def compare(self, local_tracks: Sequence[LocalTrack], remote_tracks: Sequence[RemoteTrack]) -> DurationComparison:
        comparison = DurationComparison()
        for local, remote in self._pair(local_tracks, remote_tracks):
            remote_seconds = remote.duration_seconds
            if local.duration_seconds is None or remote_seconds is None:
                continue
            comparison.per_track.append(
                compare_track(
                    float(local.duration_seconds),
                    remote_seconds,
                    self.settings.mode,
                    self.settings.strictness,
                )
            )
        if comparison.per_track:
            comparison.aggregate_confidence = sum(item.confidence for item in comparison.per_track) / len(
                comparison.per_track
            )
        return comparison

    def blend(self, original: float, comparison: DurationComparison) -> float:
        if not comparison.per_track:
            return original
        weight = self.settings.blend_weight
        blended = original * (1 - weight) + (comparison.aggregate_confidence / 100.0) * weight
        return max(0.0, min(1.0, blended))

    @staticmethod
    def _pair(
        local_tracks: Sequence[LocalTrack], remote_tracks: Sequence[RemoteTrack]
    ) -> List[Tuple[LocalTrack, RemoteTrack]]:
        numbered = all(track.track_number for track in local_tracks) and all(
            track.track_number for track in remote_tracks
        )
        if not numbered:
            return list(zip(local_tracks, remote_tracks))
        by_position = {(track.disc_number or 1, track.track_number): track for track in remote_tracks}
        pairs: List[Tuple[LocalTrack, RemoteTrack]] = []
        for track in local_tracks:
            remote = by_position.get((track.disc_number or 1, track.track_number))
            if remote is not None:
                pairs.append((track, remote))
        if not pairs:
            logger.debug("Track numbers do not line up; pairing by position")
            return list(zip(local_tracks, remote_tracks))
        return pairs
