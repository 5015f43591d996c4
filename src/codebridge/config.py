# CodeBridge™ — Interactive Program Execution Bridge
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Configuration loading and data root resolution for CodeBridge.

Handles:
- Data root resolution (CODEBRIDGE_DATA_HOME, ~/.local/share)
- Packaged YAML defaults loading (codebridge.defaults/engine.yaml)
- User override file (<data_root>/codebridge/config.yaml), deep-merged
- EngineSettings: the typed view of the ``engine`` section
- ANSI coloring constants for the terminal front end
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from importlib import resources as importlib_resources
from pathlib import Path
from typing import Any

import yaml


# -----------------------
# UI constants
# -----------------------

ANSI_COLORS: dict[str, str] = {
    "cyan": "\033[38;5;69;1m",
    "pink": "\033[38;5;169;1m",
    "magenta": "\033[38;5;126;1m",
    "yellow": "\033[38;5;226;1m",
    "reset": "\033[0m",
    "dim": "\033[2m",
    "green": "\033[32m",
    "red": "\033[31m",
}

TAG_COLORS: dict[str, str] = {
    "RUN": "green",
    "EXIT": "magenta",
    "ERR": "red",
    "INPUT": "cyan",
    "SESSION": "yellow",
}

# Semantic UI intent for clear screen operations
UI_CLEAR = "__UI_CLEAR__"

DEFAULTS_FILENAME = "engine.yaml"
USER_CONFIG_FILENAME = "config.yaml"


# -----------------------
# Config model wrapper
# -----------------------


class YAMLConfig:
    """Simple config wrapper that implements the ConfigModel protocol."""

    def __init__(self, config_dict: dict[str, Any]):
        self._config = config_dict

    @property
    def engine(self) -> dict[str, Any]:
        engine_cfg = self._config.get("engine", {})
        return engine_cfg if isinstance(engine_cfg, dict) else {}

    @property
    def ui(self) -> dict[str, Any]:
        ui_cfg = self._config.get("ui", {})
        return ui_cfg if isinstance(ui_cfg, dict) else {}

    def get(self, key: str, default: Any = None) -> Any:
        return self._config.get(key, default)

    def get_path(self, path: str, default: Any = None) -> Any:
        """
        Nested lookup using dot-separated path.
        Example: get_path("ui.theme.style", {}) -> dict style mapping
        """
        if not path:
            return default

        cur: Any = self._config
        for part in path.split("."):
            if not isinstance(cur, dict):
                return default
            if part not in cur:
                return default
            cur = cur[part]
        return cur


# -----------------------
# Engine settings
# -----------------------


@dataclass(frozen=True)
class EngineSettings:
    """Typed, validated view of the ``engine`` config section."""

    interpreter: str = "python3"
    interpreter_args: tuple[str, ...] = ("-u",)
    source_suffix: str = ".py"
    encoding: str = "utf-8"
    env: dict[str, str] = field(default_factory=dict)
    grace_window_ms: int = 500
    idle_timeout_s: float = 300.0
    sweep_interval_s: float = 5.0
    awaiting_input_after_ms: int = 250
    kill_grace_s: float = 1.0
    drain_timeout_s: float = 1.0
    read_chunk_size: int = 4096
    max_tombstones: int = 256

    def __post_init__(self) -> None:
        if not self.interpreter:
            raise ValueError("engine.interpreter must not be empty")
        for name in (
            "grace_window_ms",
            "awaiting_input_after_ms",
            "kill_grace_s",
            "drain_timeout_s",
            "max_tombstones",
        ):
            if getattr(self, name) < 0:
                raise ValueError(f"engine.{name} must be >= 0")
        for name in ("idle_timeout_s", "sweep_interval_s", "read_chunk_size"):
            if getattr(self, name) <= 0:
                raise ValueError(f"engine.{name} must be > 0")

    @property
    def grace_window_s(self) -> float:
        return self.grace_window_ms / 1000.0

    @property
    def awaiting_input_after_s(self) -> float:
        return self.awaiting_input_after_ms / 1000.0

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> EngineSettings:
        """Build settings from an ``engine`` mapping, ignoring unknown keys."""
        known = {f for f in cls.__dataclass_fields__}
        kwargs: dict[str, Any] = {}
        for key, value in (data or {}).items():
            if key not in known:
                continue
            if key == "interpreter_args":
                value = tuple(str(v) for v in (value or []))
            elif key == "env":
                value = {str(k): str(v) for k, v in (value or {}).items()}
            else:
                value = _coerce_number(key, value)
            kwargs[key] = value
        return cls(**kwargs)

    def with_overrides(self, **overrides: Any) -> EngineSettings:
        converted = {
            key: tuple(value) if key == "interpreter_args" else _coerce_number(key, value)
            for key, value in overrides.items()
        }
        return replace(self, **converted)


_INT_FIELDS = frozenset(
    {"grace_window_ms", "awaiting_input_after_ms", "read_chunk_size", "max_tombstones"}
)
_FLOAT_FIELDS = frozenset(
    {"idle_timeout_s", "sweep_interval_s", "kill_grace_s", "drain_timeout_s"}
)


def _coerce_number(key: str, value: Any) -> Any:
    """Convert numeric settings; YAML gives strings for quoted values."""
    if key not in _INT_FIELDS and key not in _FLOAT_FIELDS:
        return value
    if isinstance(value, bool):
        raise ValueError(f"engine.{key} must be a number, got {value!r}")
    try:
        return int(value) if key in _INT_FIELDS else float(value)
    except (TypeError, ValueError):
        raise ValueError(f"engine.{key} must be a number, got {value!r}") from None


# -----------------------
# Data root
# -----------------------


def get_data_root() -> Path:
    """Get the data root directory for CodeBridge.

    Resolution order:
    1. CODEBRIDGE_DATA_HOME environment variable (if set)
    2. ~/.local/share (default, XDG_DATA_HOME is ignored)
    """
    data_home = os.getenv("CODEBRIDGE_DATA_HOME")
    if data_home:
        root = Path(data_home)
    else:
        root = Path.home() / ".local" / "share"

    root.mkdir(parents=True, exist_ok=True)
    return root


def user_config_path(data_root: Path) -> Path:
    """<data_root>/codebridge/config.yaml"""
    return data_root / "codebridge" / USER_CONFIG_FILENAME


# -----------------------
# YAML loading
# -----------------------


def _defaults_dir() -> Path:
    """Return the installed path to the packaged defaults directory."""
    return Path(
        importlib_resources.files("codebridge.defaults")
    )  # type: ignore[arg-type]


def _read_yaml_mapping(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"YAML file {path} must load to a mapping/dict.")
    return data


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict with ``override`` merged into ``base`` recursively."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_defaults_yaml(filename: str = DEFAULTS_FILENAME) -> dict[str, Any]:
    """
    Load a YAML file from codebridge/defaults/.
    """
    defaults_dir = _defaults_dir()
    path = defaults_dir / filename
    if not path.exists():
        raise FileNotFoundError(
            f"Missing defaults YAML: {filename} "
            f"(looked in {defaults_dir})"
        )
    return _read_yaml_mapping(path)


def load_config(data_root: Path | None = None) -> YAMLConfig:
    """
    Load packaged defaults, then merge the user's config.yaml over them.
    """
    data = load_defaults_yaml()
    root = data_root if data_root is not None else get_data_root()
    user_path = user_config_path(root)
    if user_path.exists():
        data = deep_merge(data, _read_yaml_mapping(user_path))
    return YAMLConfig(data)


def load_engine_settings(
    config: YAMLConfig | None = None, **overrides: Any
) -> EngineSettings:
    """Resolve EngineSettings: defaults < user file < keyword overrides."""
    cfg = config if config is not None else load_config()
    settings = EngineSettings.from_mapping(cfg.engine)
    if overrides:
        settings = settings.with_overrides(**overrides)
    return settings
