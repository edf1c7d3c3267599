"""
Configuration loader for the PromptQueue service.
Reads settings from YAML file with environment variable substitution.

The queue section is intentionally kept as a live, mutable object: the
scheduling engine re-reads it at every decision point, so control handlers
mutate it in place rather than swapping it out.
"""
from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml


@dataclass
class QueueConfig:
    feature_enabled: bool = False
    delay_unit: str = "min"              # "sec" | "min"
    delay_seconds: float = 300
    delay_minutes: float = 5
    jitter_enabled: bool = False
    jitter_percent: float = 5            # 0..100, UI-clamped
    auto_scroll: bool = False
    beep: bool = False
    speak: bool = False
    finish_beep: bool = False


@dataclass
class DispatchConfig:
    type: str = "log"                    # "log" for dev, "http" for a host bridge
    url: str = ""
    timeout_seconds: float = 30.0
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class Settings:
    app_name: str = "PromptQueue"
    debug: bool = False
    queue: QueueConfig = field(default_factory=QueueConfig)
    dispatch: DispatchConfig = field(default_factory=DispatchConfig)


_settings: Optional[Settings] = None


def _substitute_env_vars(value: str) -> str:
    """Replace ${VAR_NAME} patterns with environment variable values."""
    pattern = re.compile(r'\$\{(\w+)\}')
    def replacer(match):
        var_name = match.group(1)
        return os.environ.get(var_name, match.group(0))
    return pattern.sub(replacer, value)


def _process_values(obj: Any) -> Any:
    """Recursively substitute env vars in all string values."""
    if isinstance(obj, str):
        return _substitute_env_vars(obj)
    elif isinstance(obj, dict):
        return {k: _process_values(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_process_values(v) for v in obj]
    return obj


def load_settings(config_path: str = None) -> Settings:
    """Load settings from YAML file."""
    global _settings

    if config_path is None:
        config_path = os.environ.get(
            "PROMPTQUEUE_CONFIG",
            str(Path(__file__).parent / "settings.yaml"),
        )

    settings = Settings()

    if Path(config_path).exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}
        raw = _process_values(raw)

        settings.app_name = raw.get("app_name", settings.app_name)
        settings.debug = raw.get("debug", settings.debug)

        if "queue" in raw:
            q = raw["queue"] or {}
            defaults = QueueConfig()
            settings.queue = QueueConfig(
                feature_enabled=q.get("feature_enabled", defaults.feature_enabled),
                delay_unit=q.get("delay_unit", defaults.delay_unit),
                delay_seconds=q.get("delay_seconds", defaults.delay_seconds),
                delay_minutes=q.get("delay_minutes", defaults.delay_minutes),
                jitter_enabled=q.get("jitter_enabled", defaults.jitter_enabled),
                jitter_percent=q.get("jitter_percent", defaults.jitter_percent),
                auto_scroll=q.get("auto_scroll", defaults.auto_scroll),
                beep=q.get("beep", defaults.beep),
                speak=q.get("speak", defaults.speak),
                finish_beep=q.get("finish_beep", defaults.finish_beep),
            )

        if "dispatch" in raw:
            d = raw["dispatch"] or {}
            settings.dispatch = DispatchConfig(
                type=d.get("type", "log"),
                url=d.get("url", ""),
                timeout_seconds=float(d.get("timeout_seconds", 30.0)),
                headers=d.get("headers", {}) or {},
            )

    _settings = settings
    return settings


def get_settings() -> Settings:
    """Return cached settings or load from default path."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


class SettingsConfigProvider:
    """
    Hands the engine the live queue section of a Settings object.

    `current()` is called at every decision point, never cached by callers
    across an await, so in-place edits made while a dispatch is in flight are
    observed by the next check.
    """

    def __init__(self, settings: Settings = None):
        self._settings = settings

    @property
    def settings(self) -> Settings:
        return self._settings or get_settings()

    def current(self) -> QueueConfig:
        return self.settings.queue

    def update(self, **changes: Any) -> QueueConfig:
        config = self.current()
        for key, value in changes.items():
            if not hasattr(config, key):
                raise ValueError(f"Unknown queue setting: {key}")
            setattr(config, key, value)
        return config
