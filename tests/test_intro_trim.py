from __future__ import annotations

import pytest

from steadycut.config import IntroTrimSettings
from steadycut.models import EarlyFeatures, IntroTrimPrediction, RawReading, Tick
from steadycut.session import intro_trim


def _ticks(flags: list[bool], confidence: float = 0.5) -> list[Tick]:
    return [
        Tick(
            tick=idx,
            ts=float(idx),
            window_start=float(idx - 1),
            window_end=float(idx),
            raw=RawReading(shaky=flag, confidence=confidence),
        )
        for idx, flag in enumerate(flags, start=1)
    ]


def _prediction(seconds: float) -> IntroTrimPrediction:
    return IntroTrimPrediction(intro_trim_seconds=seconds, dataset_id="default", model_id="m", raw_prediction=seconds)


def test_early_features_defaults_without_ticks() -> None:
    features = intro_trim.extract_early_features([], 1)

    assert features.early_shaky_ratio == 0.0
    assert features.early_avg_confidence == 1.0
    assert features.early_num_flips == 0


def test_early_features_only_look_at_early_window() -> None:
    flags = [True, True, False, True, False, False, False, False] + [True] * 10
    features = intro_trim.extract_early_features(_ticks(flags, 0.4), 1, user_id="u1")

    assert features.early_shaky_ratio == pytest.approx(3 / 8)
    assert features.early_avg_confidence == pytest.approx(0.4)
    assert features.early_num_flips == 3
    assert features.user_id == "u1"


def test_early_window_scales_with_tick_rate() -> None:
    flags = [True] * 4 + [False] * 20
    features = intro_trim.extract_early_features(_ticks(flags), 2, early_window_seconds=2.0)

    assert features.early_shaky_ratio == pytest.approx(1.0)
    assert features.early_num_flips == 0


def test_decision_threshold() -> None:
    assert intro_trim.create_intro_trim_decision(_prediction(1.99)) is None

    decision = intro_trim.create_intro_trim_decision(_prediction(2.0))
    assert decision is not None
    assert decision.type == "TRIM_INTRO"
    assert decision.trim_seconds == 2.0


@pytest.mark.parametrize(
    ("seconds", "expected"),
    [(2.2, 2.0), (2.3, 2.5), (2.75, 3.0), (4.0, 4.0)],
)
def test_round_to_half_second(seconds: float, expected: float) -> None:
    assert intro_trim.round_to_half_second(seconds) == expected


def test_parse_prediction_clamps_to_maximum() -> None:
    prediction = intro_trim.parse_prediction({"prediction": 12.5}, dataset_id="d", model_id="m", max_trim_seconds=8.0)

    assert prediction.intro_trim_seconds == 8.0
    assert prediction.raw_prediction == 12.5
    assert prediction.dataset_id == "d"


def test_parse_prediction_clamps_negative_and_rejects_non_finite() -> None:
    prediction = intro_trim.parse_prediction({"prediction": -1}, dataset_id="d", model_id="m")
    assert prediction.intro_trim_seconds == 0.0

    with pytest.raises(ValueError, match="finite"):
        intro_trim.parse_prediction({"prediction": float("nan")}, dataset_id="d", model_id="m")


def test_client_requires_api_key() -> None:
    client = intro_trim.IntroTrimClient(IntroTrimSettings(api_key=None))

    with pytest.raises(RuntimeError, match="API key"):
        client.predict(EarlyFeatures(early_shaky_ratio=0.5, early_avg_confidence=0.7, early_num_flips=1))


def test_client_posts_features_and_parses_prediction(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict = {}

    def _fake_request(**kwargs):
        captured.update(kwargs)
        return {"prediction": 3.25, "model_id": "intro-trim-v2"}

    monkeypatch.setattr(intro_trim, "_request_prediction", _fake_request)

    settings = IntroTrimSettings(endpoint="https://trim.example.com/api/", api_key="secret", timeout_seconds=5)
    prediction = intro_trim.IntroTrimClient(settings).predict(
        EarlyFeatures(early_shaky_ratio=0.5, early_avg_confidence=0.7, early_num_flips=1, device_type="android")
    )

    assert prediction.intro_trim_seconds == pytest.approx(3.25)
    assert prediction.model_id == "intro-trim-v2"
    assert prediction.dataset_id == "default"
    assert captured["api_key"] == "secret"
    assert captured["timeout_seconds"] == 5
    assert captured["body"]["features"] == {
        "early_shaky_ratio": 0.5,
        "early_avg_confidence": 0.7,
        "early_num_flips": 1,
        "device_type": "android",
    }
