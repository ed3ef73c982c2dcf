"""Engine settings with JSON load/save helpers."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Union

from .history import SUMMARY_LENGTH

logger = logging.getLogger("answer_stream")

__all__ = ["DEFAULT_SEPARATOR", "EngineSettings", "load_settings", "save_settings"]

DEFAULT_SEPARATOR = "\n\n---\n\n"

# JSON key -> attribute. Keys match the desktop client's settings file.
_KEYS = {
    "keepContext": "keep_context",
    "separator": "separator",
    "summaryLength": "summary_length",
    "maxHistory": "max_history",
}


@dataclass
class EngineSettings:
    """User preferences the engine reads; satisfies ``SettingsProvider``."""

    keep_context: bool = False
    separator: str = DEFAULT_SEPARATOR
    summary_length: int = SUMMARY_LENGTH
    max_history: int | None = None

    def __post_init__(self) -> None:
        if self.summary_length < 1:
            raise ValueError("summary_length must be >= 1")
        if self.max_history is not None and self.max_history < 1:
            raise ValueError("max_history must be None or >= 1")

    def to_dict(self) -> dict[str, Any]:
        return {key: getattr(self, attr) for key, attr in _KEYS.items()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EngineSettings:
        """Build settings from a JSON mapping; unknown keys are ignored."""
        values: dict[str, Any] = {}
        for key, attr in _KEYS.items():
            if key in data:
                values[attr] = data[key]
            elif attr in data:
                values[attr] = data[attr]
        if "keep_context" in values:
            values["keep_context"] = bool(values["keep_context"])
        if "summary_length" in values:
            values["summary_length"] = int(values["summary_length"])
        if values.get("max_history") is not None:
            values["max_history"] = int(values["max_history"])
        return cls(**values)


def load_settings(path: Union[str, Path]) -> EngineSettings:
    """Read settings from *path*; a missing file yields defaults."""
    settings_path = Path(path)
    if not settings_path.is_file():
        logger.info("[AnswerStream] No settings at %s; using defaults", settings_path)
        return EngineSettings()
    data = json.loads(settings_path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"Settings file {settings_path} must contain a JSON object")
    return EngineSettings.from_dict(data)


def save_settings(settings: EngineSettings, path: Union[str, Path]) -> None:
    settings_path = Path(path)
    settings_path.parent.mkdir(parents=True, exist_ok=True)
    settings_path.write_text(json.dumps(settings.to_dict(), indent=2), encoding="utf-8")
