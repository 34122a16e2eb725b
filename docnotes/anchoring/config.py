"""Configuration helpers for the anchoring engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict

import yaml


@dataclass(frozen=True)
class EngineConfig:
    """Typed wrapper around the anchoring configuration dictionary."""

    raw: Dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return self.raw.get(key, default)

    def fuzzy(self, key: str, default: Any = None) -> Any:
        return self.raw.get("fuzzy", {}).get(key, default)

    def quality_threshold(self, key: str) -> float:
        thresholds = self.raw.get("quality", {})
        return float(thresholds.get(key, 0.0))

    @property
    def debounce_seconds(self) -> float:
        return float(self.raw.get("debounce_ms", 500)) / 1000.0


DEFAULTS: Dict[str, Any] = {
    "min_anchor_text_length": 3,
    "unmoved_tolerance": 3,
    "block_separator": "\n",
    "debounce_ms": 500,
    "fuzzy": {
        "window_padding": 50,
        "max_distance_ratio": 0.2,
    },
    "quality": {
        "fuzzy_similarity": 0.8,
        "poor_similarity": 0.5,
    },
}


def load_config(path: str | Path | None = None) -> EngineConfig:
    """Load configuration from YAML, merging with defaults."""

    data: Dict[str, Any] = DEFAULTS.copy()
    data["fuzzy"] = dict(DEFAULTS["fuzzy"])
    data["quality"] = dict(DEFAULTS["quality"])

    if path is not None and Path(path).exists():
        with Path(path).open("r", encoding="utf-8") as stream:
            user = yaml.safe_load(stream) or {}
        if not isinstance(user, dict):
            raise ValueError(f"Anchoring config {path} must contain a mapping")
        merge_into(data, user)

    return EngineConfig(data)


def merge_into(base: Dict[str, Any], override: Dict[str, Any]) -> None:
    """Recursively merge override into base dict."""

    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            merge_into(base[key], value)
        else:
            base[key] = value
