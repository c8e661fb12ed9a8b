from __future__ import annotations

from steadycut.models import Segment
from steadycut.timeline.fixes import decorate_segments, is_bridge_allowed, suggest_fix


def _shaky(start: float, end: float, **kwargs) -> Segment:
    return Segment(id="seg_0001", start=start, end=end, type="SHAKY", final_fix="STABILIZE", **kwargs)


def _timeline(shaky_duration: float) -> list[Segment]:
    shaky_end = 3.0 + shaky_duration
    return [
        Segment(id="seg_0000", start=0.0, end=3.0, type="GOOD", final_fix="KEEP"),
        _shaky(3.0, shaky_end),
        Segment(id="seg_0002", start=shaky_end, end=shaky_end + 5.0, type="GOOD", final_fix="KEEP"),
    ]


def test_suggestion_boundary_at_two_seconds() -> None:
    assert suggest_fix(_shaky(3.0, 5.0)).suggested_fix == "BRIDGE"
    assert suggest_fix(_shaky(3.0, 5.01)).suggested_fix == "STABILIZE"


def test_final_fix_prefers_user_fix() -> None:
    segment = suggest_fix(_shaky(3.0, 4.0, user_fix="CUT"))

    assert segment.suggested_fix == "BRIDGE"
    assert segment.final_fix == "CUT"


def test_good_segments_always_keep() -> None:
    good = Segment(id="seg_0000", start=0.0, end=3.0, type="GOOD", final_fix="CUT", user_fix="CUT")
    suggested = suggest_fix(good)

    assert suggested.final_fix == "KEEP"
    assert suggested.user_fix is None
    assert suggested.suggested_fix is None


def test_bridge_ceiling_is_exclusive_at_eight_seconds() -> None:
    assert is_bridge_allowed(_timeline(7.99), 1, has_recording=True)
    assert not is_bridge_allowed(_timeline(8.0), 1, has_recording=True)


def test_bridge_requires_recording_and_good_neighbours() -> None:
    timeline = _timeline(2.0)
    assert is_bridge_allowed(timeline, 1, has_recording=True)
    assert not is_bridge_allowed(timeline, 1, has_recording=False)

    leading = timeline[1:]
    assert not is_bridge_allowed(leading, 0, has_recording=True)

    trailing = timeline[:2]
    assert not is_bridge_allowed(trailing, 1, has_recording=True)

    assert not is_bridge_allowed(timeline, 0, has_recording=True)


def test_decorate_sets_bridge_allowed_only_on_shaky() -> None:
    decorated = decorate_segments(_timeline(2.0), True)

    assert [segment.bridge_allowed for segment in decorated] == [False, True, False]
    assert [segment.final_fix for segment in decorated] == ["KEEP", "BRIDGE", "KEEP"]


def test_decorate_is_idempotent() -> None:
    once = decorate_segments(_timeline(4.0), True)
    twice = decorate_segments(once, True)

    assert once == twice


def test_decorate_keeps_user_bridge_even_when_not_allowed() -> None:
    timeline = _timeline(2.0)
    timeline[1].user_fix = "BRIDGE"
    decorated = decorate_segments(timeline, False)

    assert decorated[1].bridge_allowed is False
    assert decorated[1].user_fix == "BRIDGE"
    assert decorated[1].final_fix == "BRIDGE"


def test_decorate_does_not_mutate_input() -> None:
    timeline = _timeline(2.0)
    decorate_segments(timeline, True)

    assert timeline[1].suggested_fix is None
    assert timeline[1].bridge_allowed is False
