from __future__ import annotations

import json
import logging
from pathlib import Path
from time import perf_counter
from typing import Any, Callable, TypeVar

import typer

from steadycut.config import Settings, load_settings
from steadycut.errors import InvalidInputError, SteadycutError
from steadycut.logging_config import configure_logging
from steadycut.propose.exporter import export_session_artifacts, load_edit_plan, load_ticks_jsonl
from steadycut.propose.remediation import command_line, concat_command, plan_remediation_jobs
from steadycut.session.store import SessionStore

app = typer.Typer(help="Live shaky-footage segmentation and edit planning.")
config_app = typer.Typer(help="Configuration commands.")

app.add_typer(config_app, name="config")

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _run_with_progress(step_index: int, total_steps: int, label: str, work: Callable[[], T]) -> T:
    typer.echo(f"[{step_index}/{total_steps}] {label}...", err=True)
    started_at = perf_counter()
    try:
        result = work()
    except Exception:
        elapsed = perf_counter() - started_at
        typer.echo(f"[{step_index}/{total_steps}] {label} failed after {elapsed:.1f}s", err=True)
        raise
    elapsed = perf_counter() - started_at
    typer.echo(f"[{step_index}/{total_steps}] {label} done in {elapsed:.1f}s", err=True)
    return result


def _bootstrap(config_path: Path) -> Settings:
    settings = load_settings(config_path)
    configure_logging(settings.logging)
    logger.debug("Loaded runtime settings from %s", config_path)
    return settings


def _parse_fix_options(values: list[str]) -> list[tuple[str, str]]:
    parsed: list[tuple[str, str]] = []
    for value in values:
        segment_id, sep, fix = value.partition("=")
        if not sep or not segment_id.strip() or not fix.strip():
            raise InvalidInputError(f"Invalid --fix value '{value}'. Expected SEGMENT_ID=FIX.")
        parsed.append((segment_id.strip(), fix.strip()))
    return parsed


@config_app.command("show")
def show_config(
    config_path: Path = typer.Option(
        Path("configs/default.yaml"),
        "--config",
        "-c",
        envvar="STEADYCUT_CONFIG",
        help="Path to YAML configuration file.",
    )
) -> None:
    """Print resolved runtime configuration."""

    settings = _bootstrap(config_path)
    typer.echo(json.dumps(settings.model_dump(mode="json"), indent=2))


@app.command("replay")
def replay(
    ticks_path: Path = typer.Argument(..., help="Tick log, one JSON object per line."),
    fixes: list[str] = typer.Option([], "--fix", help="User fix as SEGMENT_ID=CUT|STABILIZE|BRIDGE (repeatable)."),
    recording: str | None = typer.Option(None, help="Recording reference attached when the session stops."),
    output_dir: Path | None = typer.Option(None, "--output-dir", "-o", help="Directory for session artifacts."),
    session_id: str | None = typer.Option(None, help="Session id. Defaults to the tick log's filename stem."),
    config_path: Path = typer.Option(
        Path("configs/default.yaml"),
        "--config",
        "-c",
        envvar="STEADYCUT_CONFIG",
        help="Path to YAML configuration file.",
    ),
) -> None:
    """Replay a recorded tick log through a live session and export its edit plan."""

    settings = _bootstrap(config_path)
    resolved_session_id = session_id or ticks_path.stem
    resolved_output_dir = output_dir or settings.session.output_dir
    total_steps = 4

    store = SessionStore(settings)
    try:
        requested_fixes = _parse_fix_options(fixes)
        ticks = _run_with_progress(1, total_steps, "Load ticks", lambda: load_ticks_jsonl(ticks_path))

        def _feed() -> None:
            store.start(resolved_session_id, source="replay")
            for tick in ticks:
                store.append_tick(resolved_session_id, tick)

        _run_with_progress(2, total_steps, "Replay ticks", _feed)

        def _finish() -> None:
            store.stop(resolved_session_id, recording_reference=recording)
            for segment_id, fix in requested_fixes:
                store.set_user_fix(resolved_session_id, segment_id, fix)

        _run_with_progress(3, total_steps, "Stop session and apply fixes", _finish)

        snapshot = store.get(resolved_session_id)
        plan = store.compute_edit_plan(resolved_session_id)
        exported = _run_with_progress(
            4,
            total_steps,
            "Export artifacts",
            lambda: export_session_artifacts(snapshot, plan, resolved_output_dir),
        )
    except (SteadycutError, ValueError, OSError) as exc:
        logger.error("Replay failed: %s", exc)
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    finally:
        store.shutdown()

    typer.echo(
        json.dumps(
            {
                "status": "ok",
                "session_id": resolved_session_id,
                "tick_count": len(snapshot.raw_ticks),
                "duration": snapshot.duration,
                "segments": [_segment_summary(segment) for segment in snapshot.segments],
                "warnings": snapshot.warnings,
                "outputs": {key: str(path) for key, path in exported.items()},
            },
            indent=2,
        )
    )


@app.command("jobs")
def jobs(
    plan_path: Path = typer.Argument(..., help="Path to an exported edit_plan.json."),
    recording: str = typer.Option(..., help="Path of the recording the plan refers to."),
    work_dir: Path = typer.Option(Path("data/render"), "--work-dir", "-w", help="Directory for rendered pieces."),
    config_path: Path = typer.Option(
        Path("configs/default.yaml"),
        "--config",
        "-c",
        envvar="STEADYCUT_CONFIG",
        help="Path to YAML configuration file.",
    ),
) -> None:
    """Print the render jobs (and their ffmpeg commands) an edit plan calls for."""

    settings = _bootstrap(config_path)
    try:
        plan = load_edit_plan(plan_path)
        planned = plan_remediation_jobs(
            plan,
            recording_path=recording,
            work_dir=work_dir,
            bridge_max_seconds=settings.fixes.bridge_max_seconds,
        )
    except (ValueError, KeyError, OSError) as exc:
        logger.error("Job planning failed: %s", exc)
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    rows: list[dict[str, Any]] = []
    pieces: list[str] = []
    for job in planned:
        row: dict[str, Any] = {
            "segment_id": job.segment_id,
            "kind": job.kind,
            "start": job.start,
            "end": job.end,
            "commands": [command_line(args) for args in job.commands()],
        }
        if job.kind == "CUT":
            row["reason"] = job.reason
        else:
            row["output_path"] = job.output_path
            pieces.append(job.output_path)
        bridge_error = getattr(job, "bridge_error", None)
        if bridge_error:
            row["bridge_error"] = bridge_error
        rows.append(row)

    list_path = str(work_dir / "concat.txt")
    typer.echo(
        json.dumps(
            {
                "session_id": plan.session_id,
                "jobs": rows,
                "pieces": pieces,
                "concat": command_line(concat_command(list_path, str(work_dir / f"{plan.session_id or 'edit'}.mp4"))),
            },
            indent=2,
        )
    )


def _segment_summary(segment: Any) -> dict[str, Any]:
    return {
        "id": segment.id,
        "start": segment.start,
        "end": segment.end,
        "type": segment.type,
        "final_fix": segment.final_fix,
        "bridge_allowed": segment.bridge_allowed,
    }


if __name__ == "__main__":
    app()
