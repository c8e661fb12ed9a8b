from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

SegmentType = Literal["GOOD", "SHAKY"]
ShakyFix = Literal["CUT", "STABILIZE", "BRIDGE"]
FinalFix = Literal["CUT", "STABILIZE", "BRIDGE", "KEEP"]
SessionStatus = Literal["idle", "running", "stopped"]
CaptionsStatus = Literal["idle", "running", "ready", "error"]

SHAKY_FIXES: tuple[str, ...] = ("CUT", "STABILIZE", "BRIDGE")


@dataclass(slots=True)
class RawReading:
    """One upstream classification: is this second shaky, and how sure."""

    shaky: bool = False
    confidence: float = 0.0


@dataclass(slots=True)
class Tick:
    """One per-second observation appended to a session's tick log."""

    tick: int
    ts: float
    window_start: float
    window_end: float
    raw: RawReading = field(default_factory=RawReading)
    parse_error: str | None = None


@dataclass(slots=True)
class SmoothedTick:
    tick: int
    ts: float
    final_state: SegmentType


@dataclass(slots=True)
class Segment:
    """A maximal run of one stable state, plus its remediation decision."""

    id: str
    start: float
    end: float
    type: SegmentType
    final_fix: FinalFix
    confidence_avg: float | None = None
    suggested_fix: ShakyFix | None = None
    user_fix: ShakyFix | None = None
    bridge_allowed: bool = False
    outputs: dict[str, Any] = field(default_factory=dict)

    @property
    def duration(self) -> float:
        return self.end - self.start


@dataclass(slots=True)
class CaptionsState:
    status: CaptionsStatus = "idle"
    started_at: float | None = None
    finished_at: float | None = None
    vtt_path: str | None = None
    error: str | None = None


@dataclass(slots=True)
class EarlyFeatures:
    """Summary of the first seconds of a recording, used to predict intro trim."""

    early_shaky_ratio: float
    early_avg_confidence: float
    early_num_flips: int
    user_id: str | None = None
    device_type: str | None = None


@dataclass(slots=True)
class IntroTrimPrediction:
    intro_trim_seconds: float
    dataset_id: str
    model_id: str
    raw_prediction: float


@dataclass(slots=True)
class IntroTrimDecision:
    trim_seconds: float
    display_seconds: float
    prediction: IntroTrimPrediction
    type: Literal["TRIM_INTRO"] = "TRIM_INTRO"


@dataclass(slots=True)
class IntroTrimState:
    features: EarlyFeatures
    prediction: IntroTrimPrediction | None
    decision: IntroTrimDecision | None
    applied_at: float | None = None
    error: str | None = None


@dataclass(slots=True)
class SessionSnapshot:
    """Point-in-time copy of a session; safe to hand out to callers."""

    id: str
    status: SessionStatus
    ticks_hz: int
    started_at: float | None = None
    stopped_at: float | None = None
    duration: float | None = None
    source: str | None = None
    recording_reference: str | None = None
    raw_ticks: list[Tick] = field(default_factory=list)
    smoothed: list[SmoothedTick] = field(default_factory=list)
    segments_raw: list[Segment] = field(default_factory=list)
    segments: list[Segment] = field(default_factory=list)
    captions: CaptionsState = field(default_factory=CaptionsState)
    intro_trim: IntroTrimState | None = None
    warnings: list[str] = field(default_factory=list)
