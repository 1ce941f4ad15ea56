"""
Settings loader for extraction diagnostics.

Settings come from built-in defaults, an optional YAML file and
``DIAGNOSTICS_*`` environment variables, in that order of precedence.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from src.shared.utils.env import get_env, load_env, parse_bool

from ..errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_SESSIONS_DIR = Path("logs") / "debug-sessions"
DEFAULT_SUMMARY_FILENAME = "summary.jsonl"
DEFAULT_MAX_TASKS_PER_CYCLE = 1
DEFAULT_MEMORY_THRESHOLD_MB = 300.0
DEFAULT_MEMORY_GROWTH_WARNING_MB = 200.0


def _parse_optional_float(value: str) -> Optional[float]:
    if value.strip().lower() in {"", "none", "off"}:
        return None
    return float(value)


ENV_OVERRIDES: Dict[str, tuple[str, Callable[[str], Any]]] = {
    "DIAGNOSTICS_SESSIONS_DIR": ("sessions_dir", Path),
    "DIAGNOSTICS_MAX_TASKS_PER_CYCLE": ("max_tasks_per_cycle", int),
    "DIAGNOSTICS_MEMORY_THRESHOLD_MB": ("memory_threshold_mb", float),
    "DIAGNOSTICS_MEMORY_GROWTH_WARNING_MB": ("memory_growth_warning_mb", float),
    "DIAGNOSTICS_FORCE_GC": ("force_gc", parse_bool),
    "DIAGNOSTICS_STALE_SESSION_TIMEOUT": ("stale_session_timeout_seconds", _parse_optional_float),
}


class DiagnosticsSettings(BaseModel):
    """Validated settings for session tracking and worker recycling."""

    sessions_dir: Path = DEFAULT_SESSIONS_DIR
    summary_filename: str = DEFAULT_SUMMARY_FILENAME
    max_tasks_per_cycle: int = DEFAULT_MAX_TASKS_PER_CYCLE
    memory_threshold_mb: float = DEFAULT_MEMORY_THRESHOLD_MB
    memory_growth_warning_mb: float = DEFAULT_MEMORY_GROWTH_WARNING_MB
    force_gc: bool = True
    stale_session_timeout_seconds: Optional[float] = None

    model_config = ConfigDict(extra="forbid")

    @field_validator("max_tasks_per_cycle")
    @classmethod
    def _validate_max_tasks(cls, value: int) -> int:
        if value < 1:
            msg = "max_tasks_per_cycle must be at least 1"
            raise ValueError(msg)
        return value

    @field_validator("memory_threshold_mb", "memory_growth_warning_mb")
    @classmethod
    def _validate_positive_mb(cls, value: float) -> float:
        if value <= 0:
            msg = "memory limits must be positive"
            raise ValueError(msg)
        return value

    @field_validator("stale_session_timeout_seconds")
    @classmethod
    def _validate_timeout(cls, value: Optional[float]) -> Optional[float]:
        if value is not None and value <= 0:
            msg = "stale_session_timeout_seconds must be positive"
            raise ValueError(msg)
        return value

    @field_validator("summary_filename")
    @classmethod
    def _validate_summary_filename(cls, value: str) -> str:
        if not value.strip() or "/" in value or "\\" in value:
            msg = "summary_filename must be a bare file name"
            raise ValueError(msg)
        return value

    @property
    def summary_path(self) -> Path:
        return self.sessions_dir / self.summary_filename


def load_settings(
    config_path: Optional[Union[str, Path]] = None,
    *,
    env_file: Optional[str] = None,
) -> DiagnosticsSettings:
    """
    Load diagnostics settings.

    Args:
        config_path: Optional YAML file. Either a top-level mapping of
            settings or a mapping nested under a ``diagnostics`` key.
        env_file: Optional .env file to load before reading overrides

    Returns:
        Validated DiagnosticsSettings

    Raises:
        ConfigurationError: If the YAML file is unreadable or settings are invalid
    """
    load_env(env_file)

    values: Dict[str, Any] = {}
    if config_path is not None:
        values.update(_read_yaml(Path(config_path)))

    values.update(_env_overrides())

    try:
        settings = DiagnosticsSettings(**values)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid diagnostics settings: {e}") from e

    logger.debug(
        "Diagnostics settings loaded: sessions_dir=%s max_tasks_per_cycle=%d memory_threshold_mb=%.0f",
        settings.sessions_dir,
        settings.max_tasks_per_cycle,
        settings.memory_threshold_mb,
    )
    return settings


def _read_yaml(config_path: Path) -> Dict[str, Any]:
    if not config_path.exists():
        raise ConfigurationError(f"Diagnostics configuration not found: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in configuration file: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Error reading configuration file: {e}") from e

    if not isinstance(raw_config, dict):
        raise ConfigurationError("Diagnostics configuration must be a YAML dictionary")

    section = raw_config.get("diagnostics", raw_config)
    if not isinstance(section, dict):
        raise ConfigurationError("'diagnostics' section must be a YAML dictionary")
    return dict(section)


def _env_overrides() -> Dict[str, Any]:
    """Collect settings from environment variables, skipping invalid values."""
    overrides: Dict[str, Any] = {}
    for env_var, (key, type_func) in ENV_OVERRIDES.items():
        value = get_env(env_var)
        if value is None:
            continue
        try:
            overrides[key] = type_func(value)
            logger.debug("Override from %s: %s = %s", env_var, key, overrides[key])
        except (ValueError, TypeError) as e:
            logger.warning("Invalid value for %s: %s (%s)", env_var, value, e)
    return overrides


def settings_from_env() -> DiagnosticsSettings:
    """Shortcut for ``load_settings`` with the path taken from DIAGNOSTICS_CONFIG."""
    return load_settings(os.getenv("DIAGNOSTICS_CONFIG") or None)
