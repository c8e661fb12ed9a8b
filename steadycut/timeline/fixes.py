from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace

from steadycut.models import Segment, ShakyFix

DEFAULT_BRIDGE_SUGGEST_MAX_SECONDS = 2.0
# Hard ceiling of the external generation model used for BRIDGE.
DEFAULT_BRIDGE_MAX_SECONDS = 8.0


def suggest_fix(
    segment: Segment,
    *,
    bridge_suggest_max_seconds: float = DEFAULT_BRIDGE_SUGGEST_MAX_SECONDS,
) -> Segment:
    """Return a copy of `segment` with its duration-based suggestion resolved."""

    if segment.type == "GOOD":
        return replace(segment, suggested_fix=None, user_fix=None, final_fix="KEEP", outputs=dict(segment.outputs))

    suggested: ShakyFix = "BRIDGE" if segment.duration <= bridge_suggest_max_seconds else "STABILIZE"
    return replace(
        segment,
        suggested_fix=suggested,
        final_fix=segment.user_fix or suggested,
        outputs=dict(segment.outputs),
    )


def is_bridge_allowed(
    segments: Sequence[Segment],
    index: int,
    *,
    has_recording: bool,
    bridge_max_seconds: float = DEFAULT_BRIDGE_MAX_SECONDS,
) -> bool:
    segment = segments[index]
    if segment.type != "SHAKY" or not has_recording:
        return False
    if segment.duration >= bridge_max_seconds:
        return False
    if index == 0 or index + 1 >= len(segments):
        return False
    return segments[index - 1].type == "GOOD" and segments[index + 1].type == "GOOD"


def decorate_segments(
    segments: Sequence[Segment],
    has_recording: bool,
    *,
    bridge_suggest_max_seconds: float = DEFAULT_BRIDGE_SUGGEST_MAX_SECONDS,
    bridge_max_seconds: float = DEFAULT_BRIDGE_MAX_SECONDS,
) -> list[Segment]:
    """Assign suggestions, resolve final fixes and compute BRIDGE eligibility.

    A stored `user_fix="BRIDGE"` is left in place even when BRIDGE is not
    allowed; clearing it is the session's decision, not this function's.
    """

    decorated: list[Segment] = []
    for index, segment in enumerate(segments):
        suggested = suggest_fix(segment, bridge_suggest_max_seconds=bridge_suggest_max_seconds)
        suggested.bridge_allowed = is_bridge_allowed(
            segments,
            index,
            has_recording=has_recording,
            bridge_max_seconds=bridge_max_seconds,
        )
        decorated.append(suggested)
    return decorated
