from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace

from steadycut.models import Segment
from steadycut.timeline.segment_builder import segment_id

DEFAULT_MIN_GOOD_SECONDS = 1.0
DEFAULT_MIN_SHAKY_SECONDS = 0.5
DEFAULT_MERGE_GAP_SECONDS = 0.5


def cleanup_segments(
    segments: Sequence[Segment],
    *,
    min_good_seconds: float = DEFAULT_MIN_GOOD_SECONDS,
    min_shaky_seconds: float = DEFAULT_MIN_SHAKY_SECONDS,
    merge_gap_seconds: float = DEFAULT_MERGE_GAP_SECONDS,
) -> list[Segment]:
    """Remove noise-sized segments while keeping the timeline contiguous.

    Pipeline:
    1) absorb short GOOD segments into a GOOD neighbour, drop short SHAKY ones
       (their span folds into the neighbours), merge touching GOOD segments
    2) fold GOOD / tiny SHAKY / GOOD triples into a single GOOD segment
    3) renumber ids in timeline order

    Coverage is preserved: the first start and the last end never move.
    """

    if not segments:
        return []
    if len(segments) == 1:
        return [replace(segments[0], id=segment_id(0), outputs=dict(segments[0].outputs))]

    absorbed = _absorb_noise(
        segments,
        min_good_seconds=min_good_seconds,
        min_shaky_seconds=min_shaky_seconds,
    )
    merged = _merge_negligible_gaps(absorbed, merge_gap_seconds=merge_gap_seconds)
    return [replace(segment, id=segment_id(idx)) for idx, segment in enumerate(merged)]


def _absorb_noise(
    segments: Sequence[Segment],
    *,
    min_good_seconds: float,
    min_shaky_seconds: float,
) -> list[Segment]:
    cleaned: list[Segment] = []
    # start of a span that was dropped before anything was emitted
    carry_start: float | None = None

    for idx, original in enumerate(segments):
        segment = replace(original, outputs=dict(original.outputs))
        if carry_start is not None:
            segment.start = carry_start

        duration = segment.end - segment.start
        previous = cleaned[-1] if cleaned else None
        following = segments[idx + 1] if idx + 1 < len(segments) else None

        if segment.type == "GOOD" and duration < min_good_seconds:
            if previous is not None and previous.type == "GOOD":
                previous.end = segment.end
                carry_start = None
                continue
            if following is not None and following.type == "GOOD":
                carry_start = segment.start
                continue

        if segment.type == "SHAKY" and duration < min_shaky_seconds:
            if previous is not None:
                previous.end = segment.end
                carry_start = None
            else:
                carry_start = segment.start
            continue

        carry_start = None
        if previous is not None and previous.type == "GOOD" and segment.type == "GOOD":
            previous.end = segment.end
            continue

        cleaned.append(segment)

    if not cleaned:
        # everything was noise; never hand back a zero-segment timeline
        first = segments[0]
        return [replace(first, end=segments[-1].end, outputs=dict(first.outputs))]

    return cleaned


def _merge_negligible_gaps(segments: list[Segment], *, merge_gap_seconds: float) -> list[Segment]:
    merged: list[Segment] = []
    idx = 0
    while idx < len(segments):
        current = segments[idx]
        following = segments[idx + 1] if idx + 1 < len(segments) else None
        if (
            current.type == "SHAKY"
            and current.duration < merge_gap_seconds
            and merged
            and merged[-1].type == "GOOD"
            and following is not None
            and following.type == "GOOD"
        ):
            merged[-1].end = following.end
            idx += 2
            continue
        merged.append(current)
        idx += 1
    return merged
