from __future__ import annotations

import json
import math
from collections.abc import Sequence
from typing import Any
from urllib import request

import numpy as np

from steadycut.config import IntroTrimSettings
from steadycut.models import EarlyFeatures, IntroTrimDecision, IntroTrimPrediction, Tick

DEFAULT_EARLY_WINDOW_SECONDS = 8.0
DEFAULT_MIN_TRIM_SECONDS = 2.0
DEFAULT_MAX_TRIM_SECONDS = 8.0


def extract_early_features(
    ticks: Sequence[Tick],
    ticks_hz: int,
    *,
    early_window_seconds: float = DEFAULT_EARLY_WINDOW_SECONDS,
    user_id: str | None = None,
    device_type: str | None = None,
) -> EarlyFeatures:
    """Summarise the first seconds of raw classifications for intro-trim prediction."""

    early_count = int(math.ceil(early_window_seconds * max(ticks_hz, 1)))
    early = ticks[:early_count]
    if not early:
        return EarlyFeatures(
            early_shaky_ratio=0.0,
            early_avg_confidence=1.0,
            early_num_flips=0,
            user_id=user_id,
            device_type=device_type,
        )

    shaky = np.array([tick.raw.shaky for tick in early], dtype=bool)
    confidence = np.array([tick.raw.confidence for tick in early], dtype=np.float64)
    flips = int(np.count_nonzero(shaky[1:] != shaky[:-1])) if len(shaky) > 1 else 0

    return EarlyFeatures(
        early_shaky_ratio=float(shaky.mean()),
        early_avg_confidence=float(confidence.mean()),
        early_num_flips=flips,
        user_id=user_id,
        device_type=device_type,
    )


def create_intro_trim_decision(
    prediction: IntroTrimPrediction,
    *,
    min_trim_seconds: float = DEFAULT_MIN_TRIM_SECONDS,
) -> IntroTrimDecision | None:
    """Turn a prediction into a TRIM_INTRO decision, or None when it is too small to act on."""

    if prediction.intro_trim_seconds < min_trim_seconds:
        return None
    return IntroTrimDecision(
        trim_seconds=prediction.intro_trim_seconds,
        display_seconds=round_to_half_second(prediction.intro_trim_seconds),
        prediction=prediction,
    )


def round_to_half_second(seconds: float) -> float:
    return math.floor(seconds * 2 + 0.5) / 2


class IntroTrimClient:
    """HTTP client for the hosted intro-trim model."""

    def __init__(self, settings: IntroTrimSettings) -> None:
        self._settings = settings

    def predict(self, features: EarlyFeatures) -> IntroTrimPrediction:
        if not self._settings.api_key:
            raise RuntimeError("Intro trim API key is not configured.")

        payload = _request_prediction(
            endpoint=self._settings.endpoint,
            api_key=self._settings.api_key,
            body={
                "features": _features_payload(features),
                "dataset_id": self._settings.dataset_id,
                "model_id": self._settings.model_id,
            },
            timeout_seconds=self._settings.timeout_seconds,
        )
        return parse_prediction(
            payload,
            dataset_id=self._settings.dataset_id,
            model_id=self._settings.model_id,
            max_trim_seconds=self._settings.max_trim_seconds,
        )


def parse_prediction(
    payload: dict[str, Any],
    *,
    dataset_id: str,
    model_id: str,
    max_trim_seconds: float = DEFAULT_MAX_TRIM_SECONDS,
) -> IntroTrimPrediction:
    raw_value = payload.get("prediction", payload.get("intro_trim_seconds", 0.0))
    if raw_value is None:
        raw_value = 0.0
    raw_prediction = float(raw_value)
    if not math.isfinite(raw_prediction):
        raise ValueError("Intro trim prediction must be finite.")

    return IntroTrimPrediction(
        intro_trim_seconds=max(0.0, min(max_trim_seconds, raw_prediction)),
        dataset_id=str(payload.get("dataset_id") or dataset_id),
        model_id=str(payload.get("model_id") or model_id),
        raw_prediction=raw_prediction,
    )


def _features_payload(features: EarlyFeatures) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "early_shaky_ratio": features.early_shaky_ratio,
        "early_avg_confidence": features.early_avg_confidence,
        "early_num_flips": features.early_num_flips,
    }
    if features.user_id is not None:
        payload["user_id"] = features.user_id
    if features.device_type is not None:
        payload["device_type"] = features.device_type
    return payload


def _request_prediction(*, endpoint: str, api_key: str, body: dict[str, Any], timeout_seconds: int) -> dict[str, Any]:
    req = request.Request(
        f"{endpoint.rstrip('/')}/infer/intro-trim",
        data=json.dumps(body).encode("utf-8"),
        method="POST",
        headers={
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}",
        },
    )

    with request.urlopen(req, timeout=timeout_seconds) as response:
        payload = json.loads(response.read().decode("utf-8"))

    if not isinstance(payload, dict):
        raise ValueError("Intro trim response must be a JSON object.")
    return payload
