from __future__ import annotations

from collections import deque
from collections.abc import Sequence

from steadycut.models import SegmentType, SmoothedTick, Tick

DEFAULT_WINDOW_SIZE = 3
DEFAULT_SHAKY_VOTES = 2
DEFAULT_HIGH_CONFIDENCE = 0.95


def smooth_ticks(
    ticks: Sequence[Tick],
    *,
    window_size: int = DEFAULT_WINDOW_SIZE,
    shaky_votes: int = DEFAULT_SHAKY_VOTES,
    high_confidence: float = DEFAULT_HIGH_CONFIDENCE,
) -> list[SmoothedTick]:
    """Debounce raw per-tick labels into a stable GOOD/SHAKY state.

    A majority vote over the trailing window (2-of-3 by default) decides
    transitions in both directions. A single reading at or above
    `high_confidence` may also push GOOD -> SHAKY on its own; there is no
    such shortcut back to GOOD.
    """

    window: deque[bool] = deque(maxlen=max(1, window_size))
    state: SegmentType = "GOOD"
    smoothed: list[SmoothedTick] = []

    for tick in ticks:
        window.append(bool(tick.raw.shaky))
        shaky_count = sum(window)
        majority_shaky = shaky_count >= shaky_votes
        majority_good = shaky_count <= shaky_votes - 1

        if state == "GOOD":
            if majority_shaky or tick.raw.confidence >= high_confidence:
                state = "SHAKY"
        elif majority_good:
            state = "GOOD"

        smoothed.append(SmoothedTick(tick=tick.tick, ts=tick.ts, final_state=state))

    return smoothed
