from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from steadycut.config import Settings
from steadycut.models import Segment, SmoothedTick, Tick
from steadycut.timeline.cleanup import cleanup_segments
from steadycut.timeline.fixes import decorate_segments
from steadycut.timeline.segment_builder import build_segments
from steadycut.timeline.smoothing import smooth_ticks


@dataclass(slots=True)
class TimelineResult:
    """Everything one recompute derives from the raw tick log."""

    smoothed: list[SmoothedTick] = field(default_factory=list)
    segments_raw: list[Segment] = field(default_factory=list)
    segments: list[Segment] = field(default_factory=list)


def recompute_timeline(
    ticks: Sequence[Tick],
    *,
    has_recording: bool,
    settings: Settings | None = None,
) -> TimelineResult:
    """Run smoothing -> segment building -> cleanup -> decoration over the full history."""

    settings = settings or Settings()

    smoothed = smooth_ticks(
        ticks,
        window_size=settings.smoothing.window_size,
        shaky_votes=settings.smoothing.shaky_votes,
        high_confidence=settings.smoothing.high_confidence,
    )
    segments_raw = build_segments(smoothed, ticks)
    cleaned = cleanup_segments(
        segments_raw,
        min_good_seconds=settings.cleanup.min_good_seconds,
        min_shaky_seconds=settings.cleanup.min_shaky_seconds,
        merge_gap_seconds=settings.cleanup.merge_gap_seconds,
    )
    segments = decorate_segments(
        cleaned,
        has_recording,
        bridge_suggest_max_seconds=settings.fixes.bridge_suggest_max_seconds,
        bridge_max_seconds=settings.fixes.bridge_max_seconds,
    )

    return TimelineResult(smoothed=smoothed, segments_raw=segments_raw, segments=segments)
