from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterator, Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("configs/default.yaml")
ENV_PREFIX = "STEADYCUT_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG"


class SmoothingSettings(BaseModel):
    window_size: int = 3
    shaky_votes: int = 2
    high_confidence: float = 0.95


class CleanupSettings(BaseModel):
    min_good_seconds: float = 1.0
    min_shaky_seconds: float = 0.5
    merge_gap_seconds: float = 0.5


class FixSettings(BaseModel):
    bridge_suggest_max_seconds: float = 2.0
    bridge_max_seconds: float = 8.0


class SessionSettings(BaseModel):
    ticks_hz: int = 1
    override_match_tolerance_seconds: float = 0.5
    ttl_seconds: int = 6 * 60 * 60
    caption_workers: int = 2
    output_dir: Path = Path("data/sessions")


class IntroTrimSettings(BaseModel):
    endpoint: str = "https://woodwide.example.com/api/v1"
    api_key: str | None = None
    timeout_seconds: int = 20
    early_window_seconds: float = 8.0
    min_trim_seconds: float = 2.0
    max_trim_seconds: float = 8.0
    dataset_id: str = "default"
    model_id: str = "intro-trim-v1"


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _normalize_level(value: str) -> str:
    level = str(value).strip().upper()
    if level not in LOG_LEVELS:
        raise ValueError(f"Unknown log level '{value}'. Expected one of: {', '.join(LOG_LEVELS)}.")
    return level


class LoggingSettings(BaseModel):
    level: str = "INFO"
    # logger name -> level; names without the package prefix are taken under "steadycut"
    loggers: dict[str, str] = Field(default_factory=dict)

    @field_validator("level")
    @classmethod
    def _check_level(cls, value: str) -> str:
        return _normalize_level(value)

    @field_validator("loggers")
    @classmethod
    def _check_logger_levels(cls, value: dict[str, str]) -> dict[str, str]:
        return {name.strip(): _normalize_level(level) for name, level in value.items() if name.strip()}


class Settings(BaseModel):
    smoothing: SmoothingSettings = Field(default_factory=SmoothingSettings)
    cleanup: CleanupSettings = Field(default_factory=CleanupSettings)
    fixes: FixSettings = Field(default_factory=FixSettings)
    session: SessionSettings = Field(default_factory=SessionSettings)
    intro_trim: IntroTrimSettings = Field(default_factory=IntroTrimSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Load typed settings from YAML, then apply environment overrides.

    Overrides are named ``STEADYCUT_<SECTION>__<KEY>`` and are coerced to the
    type of the value they replace (JSON for list and dict values). The file
    itself is ``config_path``, else ``$STEADYCUT_CONFIG``, else
    ``configs/default.yaml``.
    """

    resolved_path = _resolve_config_path(config_path)
    raw_config = yaml.safe_load(resolved_path.read_text(encoding="utf-8")) or {}
    if not isinstance(raw_config, dict):
        raise ValueError(f"{resolved_path} must contain a mapping of settings sections")

    data = Settings.model_validate(raw_config).model_dump(mode="python")
    for path, raw_value in _environment_overrides(os.environ):
        if not _apply_override(data, path, raw_value):
            logger.warning("Ignoring %s%s: no such setting", ENV_PREFIX, "__".join(path).upper())

    return Settings.model_validate(data)


def _resolve_config_path(config_path: str | Path | None) -> Path:
    explicit = config_path or os.getenv(CONFIG_ENV_VAR)
    return Path(explicit) if explicit else DEFAULT_CONFIG_PATH


def _environment_overrides(environ: Mapping[str, str]) -> Iterator[tuple[list[str], str]]:
    for key in sorted(environ):
        if not key.startswith(ENV_PREFIX) or key == CONFIG_ENV_VAR:
            continue
        yield [part.lower() for part in key[len(ENV_PREFIX) :].split("__")], environ[key]


def _apply_override(data: dict[str, Any], path: list[str], raw_value: str) -> bool:
    *parents, leaf = path
    section: Any = data
    for name in parents:
        section = section.get(name) if isinstance(section, dict) else None
    if not isinstance(section, dict) or leaf not in section:
        return False

    section[leaf] = _coerce_value(raw_value, section[leaf])
    return True


def _coerce_value(raw_value: str, existing_value: Any) -> Any:
    if isinstance(existing_value, bool):
        return raw_value.strip().lower() in {"1", "true", "yes", "on"}
    if isinstance(existing_value, int):
        return int(raw_value)
    if isinstance(existing_value, float):
        return float(raw_value)
    if isinstance(existing_value, list | dict):
        return json.loads(raw_value)
    if isinstance(existing_value, Path):
        return Path(raw_value)
    return raw_value
