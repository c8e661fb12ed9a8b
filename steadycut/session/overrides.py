from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, replace

from steadycut.models import Segment, ShakyFix

DEFAULT_MATCH_TOLERANCE_SECONDS = 0.5


@dataclass(slots=True)
class FixOverride:
    """A user's fix choice, anchored to the time span it was made on.

    Segment ids are positional and get reassigned on every recompute, so the
    span (not the id) is what ties an override to a segment.
    """

    anchor_start: float
    anchor_end: float
    fix: ShakyFix


def record_override(overrides: Sequence[FixOverride], segment: Segment, fix: ShakyFix) -> list[FixOverride]:
    """Return a new override table with `fix` stored for `segment` (replacing any previous choice)."""

    kept = [
        override
        for override in overrides
        if not (override.anchor_start == segment.start and override.anchor_end == segment.end)
    ]
    kept.append(FixOverride(anchor_start=segment.start, anchor_end=segment.end, fix=fix))
    return sorted(kept, key=lambda override: override.anchor_start)


def reattach_overrides(
    segments: Sequence[Segment],
    overrides: Sequence[FixOverride],
    *,
    tolerance_seconds: float = DEFAULT_MATCH_TOLERANCE_SECONDS,
) -> tuple[list[Segment], list[FixOverride], list[str]]:
    """Re-apply overrides to a freshly rebuilt segment list.

    Each override claims the unclaimed SHAKY segment whose start is nearest
    its anchor, provided the distance is within `tolerance_seconds`. Anchors
    follow the matched segment. Overrides without a match are dropped and
    reported in the returned warnings.
    """

    attached = [replace(segment, user_fix=None, outputs=dict(segment.outputs)) for segment in segments]
    claimed: set[int] = set()
    surviving: list[FixOverride] = []
    warnings: list[str] = []

    for override in sorted(overrides, key=lambda item: item.anchor_start):
        match_index = _nearest_shaky(attached, override.anchor_start, claimed, tolerance_seconds)
        if match_index is None:
            warnings.append(
                f"Dropped {override.fix} override for segment "
                f"[{override.anchor_start:.3f}, {override.anchor_end:.3f}]: "
                "no matching shaky segment after re-segmentation."
            )
            continue

        claimed.add(match_index)
        target = attached[match_index]
        target.user_fix = override.fix
        target.final_fix = override.fix
        surviving.append(FixOverride(anchor_start=target.start, anchor_end=target.end, fix=override.fix))

    return attached, surviving, warnings


def enforce_bridge_eligibility(
    segments: Sequence[Segment],
    overrides: Sequence[FixOverride],
) -> tuple[list[Segment], list[FixOverride], list[str]]:
    """Clear BRIDGE overrides on segments where BRIDGE is no longer allowed.

    The segment falls back to its suggested fix and the override is removed
    from the table, with a warning for the caller.
    """

    enforced: list[Segment] = []
    revoked: list[tuple[float, float]] = []
    warnings: list[str] = []

    for segment in segments:
        if segment.user_fix == "BRIDGE" and not segment.bridge_allowed:
            fallback = segment.suggested_fix or "STABILIZE"
            warnings.append(
                f"Cleared BRIDGE override on {segment.id} "
                f"[{segment.start:.3f}, {segment.end:.3f}]: bridge no longer allowed; "
                f"falling back to {fallback}."
            )
            revoked.append((segment.start, segment.end))
            enforced.append(replace(segment, user_fix=None, final_fix=fallback, outputs=dict(segment.outputs)))
            continue
        enforced.append(segment)

    remaining = [
        override
        for override in overrides
        if (override.anchor_start, override.anchor_end) not in revoked
    ]
    return enforced, remaining, warnings


def _nearest_shaky(
    segments: Sequence[Segment],
    anchor_start: float,
    claimed: set[int],
    tolerance_seconds: float,
) -> int | None:
    best_index: int | None = None
    best_distance = float("inf")
    for index, segment in enumerate(segments):
        if segment.type != "SHAKY" or index in claimed:
            continue
        distance = abs(segment.start - anchor_start)
        if distance <= tolerance_seconds and distance < best_distance:
            best_index = index
            best_distance = distance
    return best_index
