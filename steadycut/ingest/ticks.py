from __future__ import annotations

import json
import math
from collections.abc import Mapping
from typing import Any

from steadycut.errors import InvalidInputError
from steadycut.models import RawReading, Tick


def parse_classification(payload: Any) -> tuple[RawReading, str | None]:
    """Turn one vision result into a reading, never raising on malformed input.

    Accepts JSON text, a mapping, or a mapping whose `result` field holds the
    JSON text (the shape the realtime vision SDK delivers). Anything that does
    not parse yields the safe default reading plus the parse error message.
    """

    if isinstance(payload, Mapping) and "result" in payload:
        payload = payload["result"]

    if payload is None:
        return RawReading(), "empty classification payload"

    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            return RawReading(), f"invalid classification JSON: {exc}"

    if not isinstance(payload, Mapping):
        return RawReading(), f"classification payload must be an object, got {type(payload).__name__}"

    return _reading_from_mapping(payload), None


def normalize_tick(payload: Mapping[str, Any] | Tick) -> Tick:
    """Validate a caller-supplied tick and apply ingestion defaults.

    `tick` and `ts` are required; window bounds default to `[ts - 1, ts]`.
    A missing or non-mapping `raw` falls back to the safe default reading.
    """

    if isinstance(payload, Tick):
        payload = {
            "tick": payload.tick,
            "ts": payload.ts,
            "window_start": payload.window_start,
            "window_end": payload.window_end,
            "raw": {"shaky": payload.raw.shaky, "confidence": payload.raw.confidence},
            "parse_error": payload.parse_error,
        }

    if not isinstance(payload, Mapping):
        raise InvalidInputError("tick payload must be an object")

    if payload.get("tick") is None or payload.get("ts") is None:
        raise InvalidInputError("tick and ts are required", fields=["tick", "ts"])

    tick_number = _require_int(payload["tick"], "tick")
    ts = _require_finite(payload["ts"], "ts")

    window_start = _optional_finite(_first_present(payload, "window_start", "windowStart"), "window_start")
    window_end = _optional_finite(_first_present(payload, "window_end", "windowEnd"), "window_end")

    parse_error = _first_present(payload, "parse_error", "parseError")
    raw_payload = payload.get("raw")
    if isinstance(raw_payload, Mapping):
        raw = _reading_from_mapping(raw_payload)
    else:
        raw = RawReading()
        if raw_payload is not None and parse_error is None:
            parse_error = "raw classification must be an object"

    return Tick(
        tick=tick_number,
        ts=ts,
        window_start=window_start if window_start is not None else max(0.0, ts - 1.0),
        window_end=window_end if window_end is not None else ts,
        raw=raw,
        parse_error=str(parse_error) if parse_error is not None else None,
    )


def build_tick(tick: int, ts: float, result: Any) -> Tick:
    """Combine a caller-assigned tick number and timestamp with a vision result.

    The caller's `ts` is authoritative; any `ts` echoed by the classifier is ignored.
    """

    reading, parse_error = parse_classification(result)
    return Tick(
        tick=tick,
        ts=ts,
        window_start=max(0.0, ts - 1.0),
        window_end=ts,
        raw=reading,
        parse_error=parse_error,
    )


def clamp_confidence(value: Any) -> float:
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(confidence):
        return 0.0
    return max(0.0, min(1.0, confidence))


def _reading_from_mapping(payload: Mapping[str, Any]) -> RawReading:
    return RawReading(
        shaky=_coerce_bool(payload.get("shaky", False)),
        confidence=clamp_confidence(payload.get("confidence", 0.0)),
    )


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _first_present(payload: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if payload.get(key) is not None:
            return payload[key]
    return None


def _require_int(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise InvalidInputError(f"{name} must be an integer", field=name)
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise InvalidInputError(f"{name} must be an integer", field=name) from exc
    if not math.isfinite(number) or number != int(number):
        raise InvalidInputError(f"{name} must be an integer", field=name)
    return int(number)


def _require_finite(value: Any, name: str) -> float:
    if isinstance(value, bool):
        raise InvalidInputError(f"{name} must be a number", field=name)
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise InvalidInputError(f"{name} must be a number", field=name) from exc
    if not math.isfinite(number):
        raise InvalidInputError(f"{name} must be finite", field=name)
    return number


def _optional_finite(value: Any, name: str) -> float | None:
    if value is None:
        return None
    return _require_finite(value, name)
