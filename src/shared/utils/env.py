"""Environment variable loading utilities."""

from __future__ import annotations
import logging
import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

TRUE_VALUES = {"1", "true", "yes", "on"}
FALSE_VALUES = {"0", "false", "no", "off"}


def _find_env_files(start: Path) -> List[Path]:
    """Return .env files from the filesystem root down to ``start``."""
    candidates = [parent / ".env" for parent in reversed(start.parents)]
    candidates.append(start / ".env")
    return [path for path in candidates if path.exists()]


def load_env(env_file: Optional[str] = None, override: bool = False) -> List[Path]:
    """Load environment variables from .env files.

    Args:
        env_file: Path to a .env file. If None, every .env between the
                 filesystem root and the current directory is loaded, the
                 closest one last.
        override: Whether to override existing environment variables.

    Returns:
        The files that were loaded
    """
    if env_file:
        env_paths = [Path(env_file)] if Path(env_file).exists() else []
    else:
        env_paths = _find_env_files(Path.cwd())

    if not env_paths:
        logger.debug("No .env file found, using system environment")
        return []

    loaded = []
    for path in env_paths:
        if path in loaded:
            continue
        load_dotenv(path, override=override)
        loaded.append(path)
        logger.debug("Loaded environment from %s", path)
    return loaded


def get_env(key: str, default: Optional[str] = None) -> Optional[str]:
    """Get an environment variable, treating blank values as unset."""
    value = os.getenv(key)
    if value is None or not value.strip():
        return default
    return value.strip()


def parse_bool(value: str) -> bool:
    """Parse a boolean environment value.

    Raises:
        ValueError: If the value is not a recognised boolean string
    """
    lowered = value.strip().lower()
    if lowered in TRUE_VALUES:
        return True
    if lowered in FALSE_VALUES:
        return False
    raise ValueError(f"Invalid boolean value: {value!r}")
