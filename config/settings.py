"""
FlowVars settings: dataclass sections filled from a YAML file, with
${VAR} references expanded from the environment before values are typed.
"""
from __future__ import annotations

import os
import re
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Optional

import structlog
import yaml

logger = structlog.get_logger()


@dataclass
class SandboxConfig:
    timeout_seconds: float = 1.0          # wall-clock budget per evaluation
    max_steps: int = 100_000              # interpreter steps per evaluation
    max_call_depth: int = 200
    max_string_length: int = 1_000_000
    max_array_length: int = 100_000
    local_timezone: str = ""              # zone for Date#getHours & co, "" = host zone
    allow_fetch: bool = True
    fetch_timeout_seconds: float = 10.0
    fetch_retries: int = 2


@dataclass
class Settings:
    app_name: str = "FlowVars"
    debug: bool = False
    sandbox: SandboxConfig = field(default_factory=SandboxConfig)


_settings: Optional[Settings] = None

_ENV_VAR = re.compile(r"\$\{(\w+)\}")
_TRUE_WORDS = {"1", "true", "yes", "on"}


def _expand_env(obj: Any) -> Any:
    """Expand ${VAR_NAME} in every string of a parsed YAML tree. Unset variables are kept verbatim."""
    if isinstance(obj, str):
        return _ENV_VAR.sub(lambda m: os.environ.get(m.group(1), m.group(0)), obj)
    if isinstance(obj, dict):
        return {k: _expand_env(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_expand_env(v) for v in obj]
    return obj


def _coerce(kind: str, value: Any) -> Any:
    # field annotations are strings under `from __future__ import annotations`
    if kind == "bool":
        return value.strip().lower() in _TRUE_WORDS if isinstance(value, str) else bool(value)
    if kind == "int":
        return int(value)
    if kind == "float":
        return float(value)
    return str(value)


def _section(cls, raw: Optional[dict]):
    """Build a config dataclass from a YAML mapping; absent or null keys keep their defaults."""
    raw = raw or {}
    values = {f.name: _coerce(f.type, raw[f.name]) for f in fields(cls) if raw.get(f.name) is not None}
    unknown = set(raw) - {f.name for f in fields(cls)}
    if unknown:
        logger.warning("settings_unknown_keys", section=cls.__name__, keys=sorted(unknown))
    return cls(**values)


def load_settings(config_path: str = None) -> Settings:
    """Load settings from YAML file."""
    global _settings

    if config_path is None:
        config_path = os.environ.get(
            "FLOWVARS_CONFIG",
            str(Path(__file__).parent / "settings.yaml"),
        )

    settings = Settings()

    if Path(config_path).exists():
        with open(config_path) as f:
            raw = _expand_env(yaml.safe_load(f) or {})

        settings.app_name = str(raw.get("app_name") or settings.app_name)
        settings.debug = _coerce("bool", raw.get("debug", settings.debug))
        settings.sandbox = _section(SandboxConfig, raw.get("sandbox"))
        logger.info("settings_loaded", path=str(config_path))

    _settings = settings
    return settings


def get_settings() -> Settings:
    """Cached settings, loaded on first use."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings
