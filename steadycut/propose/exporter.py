from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path
from typing import Any

from steadycut.errors import InvalidInputError
from steadycut.ingest.ticks import normalize_tick
from steadycut.models import Segment, SessionSnapshot, Tick
from steadycut.propose.edit_plan import EditPlan, segment_to_dict


def export_session_artifacts(
    snapshot: SessionSnapshot,
    plan: EditPlan | None,
    output_dir: str | Path,
) -> dict[str, Path]:
    """Write the tick logs, segment lists and edit plan of one session."""

    session_dir = Path(output_dir) / snapshot.id
    session_dir.mkdir(parents=True, exist_ok=True)

    paths = {
        "ticks": session_dir / "ticks.jsonl",
        "smoothed": session_dir / "ticks_smoothed.jsonl",
        "segments_raw": session_dir / "segments_raw.json",
        "segments_final": session_dir / "segments_final.json",
    }

    _write_jsonl(paths["ticks"], [asdict(tick) for tick in snapshot.raw_ticks])
    _write_jsonl(paths["smoothed"], [asdict(tick) for tick in snapshot.smoothed])
    _write_segments(paths["segments_raw"], snapshot.segments_raw)
    _write_segments(paths["segments_final"], snapshot.segments)

    if plan is not None:
        paths["edit_plan"] = session_dir / "edit_plan.json"
        export_edit_plan(plan, paths["edit_plan"])

    return paths


def export_edit_plan(plan: EditPlan, output_path: str | Path) -> Path:
    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(plan.to_dict(), indent=2), encoding="utf-8")
    return path


def load_edit_plan(path: str | Path) -> EditPlan:
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    return EditPlan.from_dict(payload)


def load_ticks_jsonl(path: str | Path) -> list[Tick]:
    """Load a tick log (one JSON object per line) through normal ingestion rules."""

    ticks: list[Tick] = []
    with Path(path).open("r", encoding="utf-8") as handle:
        for line_number, line in enumerate(handle, start=1):
            if not line.strip():
                continue
            try:
                row = json.loads(line)
            except json.JSONDecodeError as exc:
                raise InvalidInputError(f"Line {line_number} is not valid JSON: {exc.msg}", line=line_number) from exc
            if not isinstance(row, dict):
                raise InvalidInputError(f"Line {line_number} must be a JSON object.", line=line_number)
            ticks.append(normalize_tick(row))
    return ticks


def _write_jsonl(path: Path, rows: list[dict[str, Any]]) -> None:
    lines = "".join(f"{json.dumps(row)}\n" for row in rows)
    path.write_text(lines, encoding="utf-8")


def _write_segments(path: Path, segments: list[Segment]) -> None:
    path.write_text(json.dumps([segment_to_dict(segment) for segment in segments], indent=2), encoding="utf-8")
