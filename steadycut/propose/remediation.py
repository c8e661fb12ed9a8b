from __future__ import annotations

import logging
import shlex
from collections.abc import Callable, Sequence
from copy import deepcopy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, ClassVar

from steadycut.models import Segment
from steadycut.propose.edit_plan import EditPlan
from steadycut.timeline.fixes import DEFAULT_BRIDGE_MAX_SECONDS

logger = logging.getLogger(__name__)

BOUNDARY_EPSILON_SECONDS = 0.1
OUTPUT_VIDEO_ARGS = ["-c:v", "libx264", "-pix_fmt", "yuv420p", "-r", "30"]
OUTPUT_AUDIO_ARGS = ["-c:a", "aac", "-ar", "44100", "-ac", "2"]


@dataclass(slots=True)
class KeepJob:
    """Copy a GOOD span of the recording into the output unchanged."""

    kind: ClassVar[str] = "KEEP"

    segment_id: str
    start: float
    end: float
    source_path: str
    output_path: str

    def commands(self) -> list[list[str]]:
        return [_slice_command(self.source_path, self.start, self.end, self.output_path)]


@dataclass(slots=True)
class CutJob:
    """Drop a span from the output; nothing is rendered."""

    kind: ClassVar[str] = "CUT"

    segment_id: str
    start: float
    end: float
    reason: str = "user"

    def commands(self) -> list[list[str]]:
        return []


@dataclass(slots=True)
class StabilizeJob:
    """Two-pass vidstab stabilization of one span."""

    kind: ClassVar[str] = "STABILIZE"

    segment_id: str
    start: float
    end: float
    source_path: str
    work_dir: str
    output_path: str
    bridge_error: str | None = None

    @property
    def slice_path(self) -> str:
        return str(Path(self.work_dir) / "slice.mp4")

    @property
    def transforms_path(self) -> str:
        return str(Path(self.work_dir) / "transforms.trf")

    def commands(self) -> list[list[str]]:
        return [
            _slice_command(self.source_path, self.start, self.end, self.slice_path),
            [
                "ffmpeg",
                "-y",
                "-i",
                self.slice_path,
                "-vf",
                f"vidstabdetect=shakiness=5:accuracy=15:result={self.transforms_path}",
                "-f",
                "null",
                "-",
            ],
            [
                "ffmpeg",
                "-y",
                "-i",
                self.slice_path,
                "-vf",
                f"vidstabtransform=smoothing=10:input={self.transforms_path}",
                *OUTPUT_VIDEO_ARGS,
                *OUTPUT_AUDIO_ARGS,
                self.output_path,
            ],
        ]


@dataclass(slots=True)
class BridgeJob:
    """Replace a short shaky span with a generated transition between two boundary frames.

    `commands()` describes the local crossfade fallback; a generative backend
    registered on the dispatcher can use the same boundary frames instead.
    """

    kind: ClassVar[str] = "BRIDGE"

    segment_id: str
    start: float
    end: float
    source_path: str
    before_ts: float
    after_ts: float
    first_frame_path: str
    last_frame_path: str
    output_path: str

    @property
    def duration(self) -> float:
        return max(0.25, self.end - self.start)

    def commands(self) -> list[list[str]]:
        duration = self.duration
        transition = min(0.5, max(0.1, duration / 3))
        offset = max(0.0, duration - transition)
        return [
            _frame_command(self.source_path, self.before_ts, self.first_frame_path),
            _frame_command(self.source_path, self.after_ts, self.last_frame_path),
            [
                "ffmpeg",
                "-y",
                "-loop",
                "1",
                "-t",
                f"{duration:.3f}",
                "-i",
                self.first_frame_path,
                "-loop",
                "1",
                "-t",
                f"{duration:.3f}",
                "-i",
                self.last_frame_path,
                "-f",
                "lavfi",
                "-t",
                f"{duration:.3f}",
                "-i",
                "anullsrc=channel_layout=stereo:sample_rate=44100",
                "-filter_complex",
                f"[0:v][1:v]xfade=transition=fade:duration={transition:.3f}:offset={offset:.3f},format=yuv420p[v]",
                "-map",
                "[v]",
                "-map",
                "2:a:0",
                "-shortest",
                *OUTPUT_VIDEO_ARGS,
                *OUTPUT_AUDIO_ARGS,
                self.output_path,
            ],
        ]


RemediationJob = KeepJob | CutJob | StabilizeJob | BridgeJob
JobHandler = Callable[[RemediationJob], dict[str, Any]]


@dataclass(slots=True)
class JobResult:
    segment_id: str
    kind: str
    success: bool
    data: dict[str, Any] = field(default_factory=dict)
    error: str | None = None


def plan_remediation_jobs(
    plan: EditPlan,
    *,
    recording_path: str,
    work_dir: str | Path,
    bridge_max_seconds: float = DEFAULT_BRIDGE_MAX_SECONDS,
) -> list[RemediationJob]:
    """Translate an edit plan into one render job per segment, in timeline order.

    Media before an intro-trim point is cut; a BRIDGE at or past the bridge
    ceiling degrades to stabilization and records why.
    """

    root = Path(work_dir)
    trim = plan.trim_seconds
    jobs: list[RemediationJob] = []

    for idx, segment in enumerate(plan.segments):
        if segment.end <= trim:
            jobs.append(CutJob(segment_id=segment.id, start=segment.start, end=segment.end, reason="intro_trim"))
            continue

        start = max(segment.start, trim)
        fix = segment.final_fix

        if segment.type == "GOOD":
            jobs.append(
                KeepJob(
                    segment_id=segment.id,
                    start=start,
                    end=segment.end,
                    source_path=recording_path,
                    output_path=str(root / "pieces" / f"{segment.id}.mp4"),
                )
            )
            continue

        if fix == "CUT":
            jobs.append(CutJob(segment_id=segment.id, start=start, end=segment.end))
            continue

        if fix == "BRIDGE" and segment.end - start < bridge_max_seconds:
            jobs.append(_bridge_job(plan.segments, idx, start=start, recording_path=recording_path, root=root))
            continue

        bridge_error = None
        if fix == "BRIDGE":
            bridge_error = f"duration >= {bridge_max_seconds:g}s bridge ceiling"
        jobs.append(
            StabilizeJob(
                segment_id=segment.id,
                start=start,
                end=segment.end,
                source_path=recording_path,
                work_dir=str(root / "stabilized" / f"{segment.id}_work"),
                output_path=str(root / "stabilized" / f"{segment.id}.mp4"),
                bridge_error=bridge_error,
            )
        )

    return jobs


def concat_command(list_path: str, output_path: str) -> list[str]:
    return ["ffmpeg", "-y", "-f", "concat", "-safe", "0", "-i", list_path, "-c", "copy", output_path]


def concat_list(piece_paths: Sequence[str]) -> str:
    lines = []
    for path in piece_paths:
        escaped = path.replace("'", "'\\''")
        lines.append(f"file '{escaped}'")
    return "\n".join(lines) + "\n"


def command_line(args: Sequence[str]) -> str:
    return shlex.join(args)


class RemediationDispatcher:
    """Routes render jobs to handlers registered per fix kind.

    Handlers return a mapping of output keys (e.g. clip paths) that end up
    in the segment's `outputs`. Failures never escape `dispatch`; they come
    back as unsuccessful results.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, JobHandler] = {}

    def register(self, kind: str, handler: JobHandler) -> None:
        self._handlers[kind.upper()] = handler

    def has_capability(self, kind: str) -> bool:
        return kind.upper() in self._handlers

    def capabilities(self) -> list[str]:
        return sorted(self._handlers)

    def dispatch(self, job: RemediationJob) -> JobResult:
        handler = self._handlers.get(job.kind)
        if handler is None:
            return JobResult(
                segment_id=job.segment_id,
                kind=job.kind,
                success=False,
                error=f"No handler registered for {job.kind}",
            )

        try:
            data = handler(job) or {}
        except Exception as exc:
            logger.warning("%s job for %s failed: %s", job.kind, job.segment_id, exc)
            return JobResult(segment_id=job.segment_id, kind=job.kind, success=False, error=str(exc))

        return JobResult(segment_id=job.segment_id, kind=job.kind, success=True, data=dict(data))

    def dispatch_all(self, jobs: Sequence[RemediationJob]) -> list[JobResult]:
        return [self.dispatch(job) for job in jobs]


def apply_job_results(plan: EditPlan, jobs: Sequence[RemediationJob], results: Sequence[JobResult]) -> EditPlan:
    """Return a copy of `plan` with job outputs merged into each segment's `outputs`."""

    updated = deepcopy(plan)
    by_id = {segment.id: segment for segment in updated.segments}

    for job in jobs:
        bridge_error = getattr(job, "bridge_error", None)
        if bridge_error and job.segment_id in by_id:
            by_id[job.segment_id].outputs["bridge_error"] = bridge_error

    for result in results:
        segment = by_id.get(result.segment_id)
        if segment is None:
            continue
        if result.success:
            segment.outputs.update(result.data)
        else:
            segment.outputs[f"{result.kind.lower()}_error"] = result.error

    return updated


def _bridge_job(
    segments: Sequence[Segment],
    index: int,
    *,
    start: float,
    recording_path: str,
    root: Path,
) -> BridgeJob:
    segment = segments[index]
    previous = segments[index - 1] if index > 0 else None
    following = segments[index + 1] if index + 1 < len(segments) else None

    before_range = previous if previous is not None and previous.type == "GOOD" else segment
    after_range = following if following is not None and following.type == "GOOD" else segment

    bridges = root / "bridges"
    return BridgeJob(
        segment_id=segment.id,
        start=start,
        end=segment.end,
        source_path=recording_path,
        before_ts=_clamp(start - BOUNDARY_EPSILON_SECONDS, before_range.start, before_range.end),
        after_ts=_clamp(segment.end + BOUNDARY_EPSILON_SECONDS, after_range.start, after_range.end),
        first_frame_path=str(bridges / f"{segment.id}_first.jpg"),
        last_frame_path=str(bridges / f"{segment.id}_last.jpg"),
        output_path=str(bridges / f"{segment.id}.mp4"),
    )


def _slice_command(source_path: str, start: float, end: float, output_path: str) -> list[str]:
    return [
        "ffmpeg",
        "-y",
        "-ss",
        f"{max(0.0, start):.3f}",
        "-to",
        f"{max(start, end):.3f}",
        "-i",
        source_path,
        *OUTPUT_VIDEO_ARGS,
        *OUTPUT_AUDIO_ARGS,
        output_path,
    ]


def _frame_command(source_path: str, ts: float, output_path: str) -> list[str]:
    return ["ffmpeg", "-y", "-ss", f"{ts:.3f}", "-i", source_path, "-frames:v", "1", "-q:v", "2", output_path]


def _clamp(value: float, minimum: float, maximum: float) -> float:
    return max(minimum, min(maximum, value))
