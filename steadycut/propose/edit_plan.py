from __future__ import annotations

from copy import deepcopy
from dataclasses import asdict, dataclass
from typing import Any

from steadycut.models import (
    IntroTrimDecision,
    IntroTrimPrediction,
    Segment,
    SessionSnapshot,
)

PLAN_VERSION = 1


@dataclass(slots=True)
class EditPlan:
    """Serializable snapshot of a session's segment decisions."""

    session_id: str
    duration: float
    ticks_hz: int
    segments: list[Segment]
    version: int = PLAN_VERSION
    source: str | None = None
    recording_url: str | None = None
    captions_vtt_path: str | None = None
    intro_trim: IntroTrimDecision | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "version": self.version,
            "duration": self.duration,
            "session_id": self.session_id,
            "ticks_hz": self.ticks_hz,
        }
        if self.source is not None:
            payload["source"] = self.source
        if self.recording_url is not None:
            payload["recording_url"] = self.recording_url
        if self.captions_vtt_path is not None:
            payload["captions_vtt_path"] = self.captions_vtt_path
        if self.intro_trim is not None:
            payload["intro_trim"] = asdict(self.intro_trim)
        payload["segments"] = [segment_to_dict(segment) for segment in self.segments]
        return payload

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> EditPlan:
        if not isinstance(payload, dict):
            raise ValueError("Edit plan must be a JSON object.")
        raw_segments = payload.get("segments")
        if not isinstance(raw_segments, list):
            raise ValueError("Edit plan is missing a 'segments' array.")

        intro_trim_payload = payload.get("intro_trim")
        return cls(
            version=int(payload.get("version", PLAN_VERSION)),
            session_id=str(payload.get("session_id", "")),
            duration=float(payload.get("duration", 0.0)),
            ticks_hz=int(payload.get("ticks_hz", 1)),
            segments=[segment_from_dict(row, idx) for idx, row in enumerate(raw_segments, start=1)],
            source=payload.get("source"),
            recording_url=payload.get("recording_url"),
            captions_vtt_path=payload.get("captions_vtt_path"),
            intro_trim=_intro_trim_from_dict(intro_trim_payload) if intro_trim_payload else None,
        )

    @property
    def trim_seconds(self) -> float:
        return self.intro_trim.trim_seconds if self.intro_trim is not None else 0.0


def build_edit_plan(snapshot: SessionSnapshot) -> EditPlan | None:
    """Project a session snapshot onto the external edit-plan contract.

    Returns None while the session has not been started.
    """

    if snapshot.status == "idle":
        return None

    if snapshot.duration is not None:
        duration = snapshot.duration
    elif snapshot.raw_ticks:
        duration = snapshot.raw_ticks[-1].ts
    else:
        duration = 0.0

    captions_path = snapshot.captions.vtt_path if snapshot.captions.status == "ready" else None
    intro_trim = snapshot.intro_trim.decision if snapshot.intro_trim is not None else None

    return EditPlan(
        session_id=snapshot.id,
        duration=duration,
        ticks_hz=snapshot.ticks_hz,
        segments=deepcopy(snapshot.segments),
        source=snapshot.source,
        recording_url=snapshot.recording_reference,
        captions_vtt_path=captions_path,
        intro_trim=deepcopy(intro_trim),
    )


def segment_to_dict(segment: Segment) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "id": segment.id,
        "start": segment.start,
        "end": segment.end,
        "type": segment.type,
        "confidence_avg": segment.confidence_avg,
    }
    if segment.suggested_fix is not None:
        payload["suggested_fix"] = segment.suggested_fix
    payload["user_fix"] = segment.user_fix
    payload["final_fix"] = segment.final_fix
    payload["bridge_allowed"] = segment.bridge_allowed
    payload["outputs"] = dict(segment.outputs)
    return payload


def segment_from_dict(row: Any, index: int) -> Segment:
    if not isinstance(row, dict):
        raise ValueError(f"Segment row {index} must be an object.")

    segment_type = row.get("type")
    if segment_type not in {"GOOD", "SHAKY"}:
        raise ValueError(f"Segment row {index} has unsupported type {segment_type!r}.")

    confidence = row.get("confidence_avg")
    return Segment(
        id=str(row["id"]),
        start=float(row["start"]),
        end=float(row["end"]),
        type=segment_type,
        final_fix=row.get("final_fix") or ("KEEP" if segment_type == "GOOD" else "STABILIZE"),
        confidence_avg=float(confidence) if confidence is not None else None,
        suggested_fix=row.get("suggested_fix"),
        user_fix=row.get("user_fix"),
        bridge_allowed=bool(row.get("bridge_allowed", False)),
        outputs=dict(row.get("outputs") or {}),
    )


def _intro_trim_from_dict(payload: dict[str, Any]) -> IntroTrimDecision:
    prediction = payload.get("prediction") or {}
    return IntroTrimDecision(
        trim_seconds=float(payload["trim_seconds"]),
        display_seconds=float(payload.get("display_seconds", payload["trim_seconds"])),
        prediction=IntroTrimPrediction(
            intro_trim_seconds=float(prediction.get("intro_trim_seconds", payload["trim_seconds"])),
            dataset_id=str(prediction.get("dataset_id", "default")),
            model_id=str(prediction.get("model_id", "intro-trim-v1")),
            raw_prediction=float(prediction.get("raw_prediction", payload["trim_seconds"])),
        ),
    )
