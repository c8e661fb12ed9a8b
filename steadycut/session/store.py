from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Mapping
from concurrent.futures import Future, ThreadPoolExecutor
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any

from steadycut.config import Settings
from steadycut.errors import InvalidInputError, NotFoundError, PreconditionError
from steadycut.ingest.ticks import normalize_tick
from steadycut.models import (
    SHAKY_FIXES,
    CaptionsState,
    EarlyFeatures,
    IntroTrimPrediction,
    IntroTrimState,
    SessionSnapshot,
    ShakyFix,
    Tick,
)
from steadycut.pipeline_timeline_builder import recompute_timeline
from steadycut.propose.edit_plan import EditPlan, build_edit_plan
from steadycut.session.intro_trim import IntroTrimClient, create_intro_trim_decision, extract_early_features
from steadycut.session.overrides import (
    FixOverride,
    enforce_bridge_eligibility,
    reattach_overrides,
    record_override,
)

logger = logging.getLogger(__name__)

CaptionGenerator = Callable[[str, str], str]
IntroTrimPredictor = Callable[[EarlyFeatures], IntroTrimPrediction]

MAX_WARNINGS = 50


@dataclass(slots=True)
class _SessionRecord:
    state: SessionSnapshot
    lock: threading.Lock = field(default_factory=threading.Lock)
    overrides: list[FixOverride] = field(default_factory=list)
    caption_job: Future[None] | None = None
    updated_at: float = 0.0
    discarded: bool = False


class SessionStore:
    """Owns every live session and serializes mutations per session.

    Each session has its own lock, held across "mutate + recompute", so a
    reader never sees a tick log and a segment list that disagree. Distinct
    sessions never contend beyond the brief registry lookup.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        caption_generator: CaptionGenerator | None = None,
        intro_trim_predictor: IntroTrimPredictor | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._settings = settings or Settings()
        self._caption_generator = caption_generator
        self._intro_trim_predictor = intro_trim_predictor
        self._clock = clock
        self._sessions: dict[str, _SessionRecord] = {}
        self._registry_lock = threading.Lock()
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, self._settings.session.caption_workers),
            thread_name_prefix="steadycut-captions",
        )

    # lifecycle

    def create(self, session_id: str) -> SessionSnapshot:
        """Register an idle session; it has no edit plan until started."""

        session_id = _require_session_id(session_id)
        with self._registry_lock:
            if session_id in self._sessions:
                raise PreconditionError(f"Session already exists: {session_id}", session_id=session_id)
            record = self._new_record(session_id)
            self._sessions[session_id] = record
            return deepcopy(record.state)

    def start(
        self,
        session_id: str,
        *,
        source: str | None = None,
        recording_reference: str | None = None,
    ) -> SessionSnapshot:
        session_id = _require_session_id(session_id)
        with self._registry_lock:
            record = self._sessions.get(session_id)
            if record is None:
                record = self._new_record(session_id)
                self._sessions[session_id] = record

        with record.lock:
            _require_live(record, session_id)
            state = record.state
            if state.status != "idle":
                raise PreconditionError(
                    f"Session {session_id} is already {state.status}",
                    session_id=session_id,
                    status=state.status,
                )
            state.status = "running"
            state.started_at = self._clock()
            state.source = source
            state.recording_reference = recording_reference or None
            self._recompute(record)
            logger.info("Started session %s (source=%s)", session_id, source or "default")
            return deepcopy(state)

    def stop(self, session_id: str, recording_reference: str | None = None) -> SessionSnapshot:
        """Finalize duration, attach the recording and run the final recompute."""

        record = self._record(session_id)
        with record.lock:
            _require_live(record, session_id)
            state = record.state
            if state.status == "idle":
                raise PreconditionError(f"Session {session_id} was never started", session_id=session_id)

            if state.status == "running":
                state.status = "stopped"
                state.stopped_at = self._clock()
                if state.raw_ticks:
                    state.duration = state.raw_ticks[-1].ts
                elif state.started_at is not None:
                    state.duration = max(0.0, state.stopped_at - state.started_at)
                else:
                    state.duration = 0.0

            if recording_reference:
                state.recording_reference = recording_reference

            self._recompute(record)
            logger.info(
                "Stopped session %s: duration=%.3fs segments=%d recording=%s",
                session_id,
                state.duration or 0.0,
                len(state.segments),
                "yes" if state.recording_reference else "no",
            )
            return deepcopy(state)

    def discard(self, session_id: str) -> bool:
        """Remove a session; callers still holding its record get NotFoundError."""

        with self._registry_lock:
            removed = self._sessions.pop(session_id, None)
        if removed is None:
            return False
        with removed.lock:
            removed.discarded = True
        logger.info("Discarded session %s", session_id)
        return True

    def evict_expired(self, now: float | None = None) -> list[str]:
        """Drop sessions untouched for longer than the configured TTL."""

        ttl_seconds = self._settings.session.ttl_seconds
        if ttl_seconds <= 0:
            return []

        current = self._clock() if now is None else now
        evicted: list[tuple[str, _SessionRecord]] = []
        with self._registry_lock:
            for session_id, record in list(self._sessions.items()):
                job = record.caption_job
                if job is not None and not job.done():
                    continue
                if current - record.updated_at > ttl_seconds:
                    del self._sessions[session_id]
                    evicted.append((session_id, record))

        for session_id, record in evicted:
            with record.lock:
                record.discarded = True
            logger.info("Evicted expired session %s", session_id)
        return [session_id for session_id, _ in evicted]

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    # ingestion and edits

    def append_tick(self, session_id: str, tick: Tick | Mapping[str, Any]) -> SessionSnapshot:
        """Append one classification and recompute the whole timeline."""

        record = self._record(session_id)
        normalized = normalize_tick(tick)
        if normalized.parse_error:
            logger.warning(
                "Session %s tick %d: classification parse error (%s); using safe default.",
                session_id,
                normalized.tick,
                normalized.parse_error,
            )

        with record.lock:
            _require_live(record, session_id)
            state = record.state
            if state.status != "running":
                raise PreconditionError(
                    f"Session {session_id} is not accepting ticks (status={state.status})",
                    session_id=session_id,
                    status=state.status,
                )
            _validate_tick_order(state.raw_ticks, normalized)

            state.raw_ticks.append(normalized)
            self._recompute(record)
            return deepcopy(state)

    def set_user_fix(self, session_id: str, segment_id: str, fix: str) -> SessionSnapshot:
        """Record a user override on one SHAKY segment; segments are not rebuilt."""

        normalized_fix = normalize_fix(fix)
        record = self._record(session_id)
        with record.lock:
            _require_live(record, session_id)
            state = record.state
            target = next((segment for segment in state.segments if segment.id == segment_id), None)
            if target is None:
                raise NotFoundError(
                    f"Segment not found: {segment_id}",
                    session_id=session_id,
                    segment_id=segment_id,
                )
            if target.type != "SHAKY":
                raise InvalidInputError(
                    f"Segment {segment_id} is GOOD; only SHAKY segments take a fix",
                    segment_id=segment_id,
                )
            if normalized_fix == "BRIDGE" and not target.bridge_allowed:
                raise PreconditionError(
                    f"BRIDGE is not allowed for segment {segment_id}",
                    segment_id=segment_id,
                )

            target.user_fix = normalized_fix
            target.final_fix = normalized_fix
            record.overrides = record_override(record.overrides, target, normalized_fix)
            record.updated_at = self._clock()
            logger.info("Session %s: %s set to %s", session_id, segment_id, normalized_fix)
            return deepcopy(state)

    # reads

    def get(self, session_id: str) -> SessionSnapshot:
        record = self._record(session_id)
        with record.lock:
            _require_live(record, session_id)
            return deepcopy(record.state)

    def compute_edit_plan(self, session_id: str) -> EditPlan | None:
        with self._registry_lock:
            record = self._sessions.get(session_id)
        if record is None:
            return None
        with record.lock:
            if record.discarded:
                return None
            return build_edit_plan(record.state)

    def session_ids(self) -> list[str]:
        with self._registry_lock:
            return sorted(self._sessions)

    # background jobs

    def generate_captions(self, session_id: str, recording_reference: str | None = None) -> SessionSnapshot:
        """Start caption generation unless a job is already running or done.

        Returns immediately with the current captions status; the job's
        outcome lands on the session when it finishes.
        """

        record = self._record(session_id)
        with record.lock:
            _require_live(record, session_id)
            state = record.state
            recording = recording_reference or state.recording_reference
            if state.status != "stopped":
                raise PreconditionError(
                    f"Session {session_id} must be stopped before captioning",
                    session_id=session_id,
                    status=state.status,
                )
            if not recording:
                raise PreconditionError(f"Session {session_id} has no recording", session_id=session_id)
            if self._caption_generator is None:
                raise PreconditionError("No caption generator is configured")

            if recording != state.recording_reference:
                state.recording_reference = recording
                self._recompute(record)

            if state.captions.status == "running":
                return deepcopy(state)
            if state.captions.status == "ready" and state.captions.vtt_path:
                return deepcopy(state)

            started_at = self._clock()
            try:
                # the job blocks on record.lock until this call returns
                job = self._executor.submit(
                    self._run_caption_job,
                    record,
                    self._caption_generator,
                    session_id,
                    state.recording_reference,
                )
            except RuntimeError as exc:
                logger.warning("Session %s: caption job could not be started: %s", session_id, exc)
                state.captions = CaptionsState(
                    status="error",
                    started_at=started_at,
                    finished_at=self._clock(),
                    error=str(exc),
                )
                record.updated_at = self._clock()
                raise PreconditionError(
                    f"Caption job could not be started: {exc}",
                    session_id=session_id,
                ) from exc

            state.captions = CaptionsState(status="running", started_at=started_at)
            record.caption_job = job
            logger.info("Session %s: caption job started", session_id)
            return deepcopy(state)

    def caption_job(self, session_id: str) -> Future[None] | None:
        record = self._record(session_id)
        with record.lock:
            _require_live(record, session_id)
            return record.caption_job

    def apply_intro_trim(
        self,
        session_id: str,
        *,
        predictor: IntroTrimPredictor | None = None,
        user_id: str | None = None,
        device_type: str | None = None,
    ) -> SessionSnapshot:
        """Predict how much unstable intro to trim and record the decision on the session."""

        trim_settings = self._settings.intro_trim
        record = self._record(session_id)
        with record.lock:
            _require_live(record, session_id)
            state = record.state
            if state.status == "idle":
                raise PreconditionError(f"Session {session_id} was never started", session_id=session_id)
            features = extract_early_features(
                list(state.raw_ticks),
                state.ticks_hz,
                early_window_seconds=trim_settings.early_window_seconds,
                user_id=user_id,
                device_type=device_type,
            )

        resolved_predictor = predictor or self._intro_trim_predictor or IntroTrimClient(trim_settings).predict
        try:
            prediction = resolved_predictor(features)
        except Exception as exc:
            logger.warning("Session %s: intro trim prediction failed: %s", session_id, exc)
            with record.lock:
                _require_live(record, session_id)
                record.state.intro_trim = IntroTrimState(
                    features=features,
                    prediction=None,
                    decision=None,
                    applied_at=self._clock(),
                    error=str(exc),
                )
                record.updated_at = self._clock()
                return deepcopy(record.state)

        decision = create_intro_trim_decision(prediction, min_trim_seconds=trim_settings.min_trim_seconds)
        with record.lock:
            _require_live(record, session_id)
            record.state.intro_trim = IntroTrimState(
                features=features,
                prediction=prediction,
                decision=decision,
                applied_at=self._clock(),
            )
            record.updated_at = self._clock()
            logger.info(
                "Session %s: intro trim %s",
                session_id,
                f"{decision.trim_seconds:.2f}s" if decision else "not applied",
            )
            return deepcopy(record.state)

    # internals

    def _new_record(self, session_id: str) -> _SessionRecord:
        return _SessionRecord(
            state=SessionSnapshot(id=session_id, status="idle", ticks_hz=self._settings.session.ticks_hz),
            updated_at=self._clock(),
        )

    def _record(self, session_id: str) -> _SessionRecord:
        with self._registry_lock:
            record = self._sessions.get(session_id)
        if record is None:
            raise NotFoundError(f"Session not found: {session_id}", session_id=session_id)
        return record

    def _recompute(self, record: _SessionRecord) -> None:
        # caller holds record.lock
        state = record.state
        result = recompute_timeline(
            state.raw_ticks,
            has_recording=bool(state.recording_reference),
            settings=self._settings,
        )
        segments, overrides, lost = reattach_overrides(
            result.segments,
            record.overrides,
            tolerance_seconds=self._settings.session.override_match_tolerance_seconds,
        )
        segments, overrides, cleared = enforce_bridge_eligibility(segments, overrides)

        state.smoothed = result.smoothed
        state.segments_raw = result.segments_raw
        state.segments = segments
        record.overrides = overrides
        record.updated_at = self._clock()

        for warning in lost + cleared:
            logger.warning("Session %s: %s", state.id, warning)
            state.warnings.append(warning)
        if len(state.warnings) > MAX_WARNINGS:
            del state.warnings[:-MAX_WARNINGS]

        logger.debug(
            "Session %s recomputed: ticks=%d raw_segments=%d segments=%d",
            state.id,
            len(state.raw_ticks),
            len(state.segments_raw),
            len(state.segments),
        )

    def _run_caption_job(
        self,
        record: _SessionRecord,
        generator: CaptionGenerator,
        session_id: str,
        recording_reference: str,
    ) -> None:
        try:
            vtt_path = generator(session_id, recording_reference)
        except Exception as exc:
            logger.warning("Session %s: caption job failed: %s", session_id, exc)
            with record.lock:
                previous = record.state.captions
                record.state.captions = CaptionsState(
                    status="error",
                    started_at=previous.started_at,
                    finished_at=self._clock(),
                    error=str(exc),
                )
                record.updated_at = self._clock()
            return

        with record.lock:
            previous = record.state.captions
            record.state.captions = CaptionsState(
                status="ready",
                started_at=previous.started_at,
                finished_at=self._clock(),
                vtt_path=vtt_path,
            )
            record.updated_at = self._clock()
        logger.info("Session %s: captions ready at %s", session_id, vtt_path)


def normalize_fix(fix: Any) -> ShakyFix:
    normalized = str(fix).strip().upper() if fix is not None else ""
    if normalized not in SHAKY_FIXES:
        raise InvalidInputError(
            f"Unsupported fix '{fix}'. Expected one of: {', '.join(SHAKY_FIXES)}.",
            fix=fix,
        )
    return normalized  # type: ignore[return-value]


def _require_session_id(session_id: Any) -> str:
    if not isinstance(session_id, str) or not session_id.strip():
        raise InvalidInputError("session_id must be a non-empty string")
    return session_id


def _require_live(record: _SessionRecord, session_id: str) -> None:
    # caller holds record.lock
    if record.discarded:
        raise NotFoundError(f"Session not found: {session_id}", session_id=session_id)


def _validate_tick_order(existing: list[Tick], tick: Tick) -> None:
    if tick.ts <= 0:
        raise InvalidInputError("ts must be greater than 0", ts=tick.ts)
    if not existing:
        return
    last = existing[-1]
    if tick.tick <= last.tick:
        raise InvalidInputError(
            f"tick {tick.tick} is not after the last tick {last.tick}",
            tick=tick.tick,
            last_tick=last.tick,
        )
    if tick.ts <= last.ts:
        raise InvalidInputError(
            f"ts {tick.ts} is not after the last ts {last.ts}",
            ts=tick.ts,
            last_ts=last.ts,
        )
