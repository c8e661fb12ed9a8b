from __future__ import annotations

from steadycut.models import Segment
from steadycut.timeline.cleanup import cleanup_segments


def _segments(*spans: tuple[str, float, float]) -> list[Segment]:
    return [
        Segment(
            id=f"raw_{idx}",
            start=start,
            end=end,
            type=segment_type,
            final_fix="KEEP" if segment_type == "GOOD" else "STABILIZE",
            confidence_avg=None if segment_type == "GOOD" else 0.7,
        )
        for idx, (segment_type, start, end) in enumerate(spans)
    ]


def _shape(segments: list[Segment]) -> list[tuple[str, float, float]]:
    return [(segment.type, segment.start, segment.end) for segment in segments]


def _assert_contiguous(segments: list[Segment], start: float, end: float) -> None:
    assert segments[0].start == start
    assert segments[-1].end == end
    for previous, current in zip(segments, segments[1:]):
        assert current.start == previous.end


def test_cleanup_empty_and_single_segment() -> None:
    assert cleanup_segments([]) == []

    single = cleanup_segments(_segments(("SHAKY", 0.0, 0.2)))
    assert _shape(single) == [("SHAKY", 0.0, 0.2)]
    assert single[0].id == "seg_0000"


def test_cleanup_leaves_well_formed_timeline_alone() -> None:
    segments = _segments(("GOOD", 0.0, 3.0), ("SHAKY", 3.0, 6.0), ("GOOD", 6.0, 10.0))
    cleaned = cleanup_segments(segments)

    assert _shape(cleaned) == _shape(segments)
    assert [segment.id for segment in cleaned] == ["seg_0000", "seg_0001", "seg_0002"]


def test_short_shaky_between_goods_is_dropped_and_goods_merge() -> None:
    segments = _segments(("GOOD", 0.0, 3.0), ("SHAKY", 3.0, 3.3), ("GOOD", 3.3, 8.0))
    cleaned = cleanup_segments(segments)

    assert _shape(cleaned) == [("GOOD", 0.0, 8.0)]


def test_leading_short_shaky_folds_into_next_segment() -> None:
    segments = _segments(("SHAKY", 0.0, 0.3), ("GOOD", 0.3, 5.0), ("SHAKY", 5.0, 7.0))
    cleaned = cleanup_segments(segments)

    assert _shape(cleaned) == [("GOOD", 0.0, 5.0), ("SHAKY", 5.0, 7.0)]


def test_short_good_absorbed_into_previous_good() -> None:
    segments = _segments(
        ("GOOD", 0.0, 3.0),
        ("SHAKY", 3.0, 3.2),
        ("GOOD", 3.2, 3.8),
        ("SHAKY", 3.8, 6.0),
    )
    cleaned = cleanup_segments(segments)

    assert _shape(cleaned) == [("GOOD", 0.0, 3.8), ("SHAKY", 3.8, 6.0)]
    _assert_contiguous(cleaned, 0.0, 6.0)


def test_short_good_absorbed_forward_into_next_good() -> None:
    segments = _segments(("GOOD", 0.0, 0.5), ("GOOD", 0.5, 4.0), ("SHAKY", 4.0, 6.0))
    cleaned = cleanup_segments(segments)

    assert _shape(cleaned) == [("GOOD", 0.0, 4.0), ("SHAKY", 4.0, 6.0)]


def test_isolated_short_good_between_shaky_segments_is_kept() -> None:
    segments = _segments(("SHAKY", 0.0, 3.0), ("GOOD", 3.0, 3.5), ("SHAKY", 3.5, 6.0))
    cleaned = cleanup_segments(segments)

    assert _shape(cleaned) == _shape(segments)


def test_trailing_short_shaky_extends_previous_segment() -> None:
    segments = _segments(("GOOD", 0.0, 5.0), ("SHAKY", 5.0, 5.4))
    cleaned = cleanup_segments(segments)

    assert _shape(cleaned) == [("GOOD", 0.0, 5.4)]


def test_cleanup_preserves_coverage_and_minimum_durations() -> None:
    segments = _segments(
        ("GOOD", 0.0, 2.0),
        ("SHAKY", 2.0, 2.4),
        ("GOOD", 2.4, 2.9),
        ("SHAKY", 2.9, 5.0),
        ("GOOD", 5.0, 5.6),
        ("SHAKY", 5.6, 9.0),
        ("GOOD", 9.0, 12.0),
    )
    cleaned = cleanup_segments(segments)

    _assert_contiguous(cleaned, 0.0, 12.0)
    for idx, segment in enumerate(cleaned):
        if segment.type == "SHAKY":
            assert segment.duration >= 0.5
        else:
            isolated = (
                0 < idx < len(cleaned) - 1
                and cleaned[idx - 1].type == "SHAKY"
                and cleaned[idx + 1].type == "SHAKY"
            )
            assert segment.duration >= 1.0 or isolated
    assert [segment.id for segment in cleaned] == [f"seg_{idx:04d}" for idx in range(len(cleaned))]


def test_cleanup_does_not_mutate_input() -> None:
    segments = _segments(("GOOD", 0.0, 3.0), ("SHAKY", 3.0, 3.3), ("GOOD", 3.3, 8.0))
    cleanup_segments(segments)

    assert _shape(segments) == [("GOOD", 0.0, 3.0), ("SHAKY", 3.0, 3.3), ("GOOD", 3.3, 8.0)]
    assert [segment.id for segment in segments] == ["raw_0", "raw_1", "raw_2"]


def test_custom_thresholds_keep_short_segments() -> None:
    segments = _segments(("GOOD", 0.0, 3.0), ("SHAKY", 3.0, 3.3), ("GOOD", 3.3, 8.0))
    cleaned = cleanup_segments(segments, min_shaky_seconds=0.1, merge_gap_seconds=0.1)

    assert _shape(cleaned) == _shape(segments)


def test_gap_merge_folds_tiny_shaky_between_goods() -> None:
    # min_shaky is disabled so only the second pass can remove the blip
    segments = _segments(("GOOD", 0.0, 3.0), ("SHAKY", 3.0, 3.3), ("GOOD", 3.3, 8.0))
    cleaned = cleanup_segments(segments, min_shaky_seconds=0.0, merge_gap_seconds=0.5)

    assert _shape(cleaned) == [("GOOD", 0.0, 8.0)]
