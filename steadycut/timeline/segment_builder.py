from __future__ import annotations

from collections.abc import Sequence

from steadycut.models import Segment, SegmentType, SmoothedTick, Tick
from steadycut.timeline.fixes import suggest_fix


def build_segments(smoothed: Sequence[SmoothedTick], raw: Sequence[Tick]) -> list[Segment]:
    """Collapse smoothed ticks into contiguous, time-bounded raw segments.

    Pipeline:
    1) walk the smoothed states, each tick covering the interval that ends at its `ts`
       (the very first interval starts at 0)
    2) close a segment whenever the state changes; the next one starts where it ended
    3) attach the mean raw confidence to SHAKY segments

    Fixes set here are placeholders; cleanup changes durations, so the
    authoritative suggestion happens after it.
    """

    if not smoothed:
        return []

    runs: list[tuple[SegmentType, float, float]] = []
    open_type = smoothed[0].final_state
    open_start = 0.0
    open_end = float(smoothed[0].ts)

    for tick in smoothed[1:]:
        if tick.final_state == open_type:
            open_end = float(tick.ts)
            continue
        runs.append((open_type, open_start, open_end))
        open_type = tick.final_state
        open_start = open_end
        open_end = float(tick.ts)

    runs.append((open_type, open_start, open_end))

    segments: list[Segment] = []
    for idx, (segment_type, start, end) in enumerate(runs):
        segment = Segment(
            id=segment_id(idx),
            start=start,
            end=end,
            type=segment_type,
            final_fix="KEEP",
        )
        if segment_type == "SHAKY":
            segment.confidence_avg = _mean_confidence(raw, start=start, end=end)
        segments.append(suggest_fix(segment))

    return segments


def segment_id(index: int) -> str:
    return f"seg_{index:04d}"


def _mean_confidence(raw: Sequence[Tick], *, start: float, end: float) -> float | None:
    values = [tick.raw.confidence for tick in raw if start < tick.ts <= end]
    if not values:
        return None
    return sum(values) / len(values)
