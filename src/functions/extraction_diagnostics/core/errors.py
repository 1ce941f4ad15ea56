"""Exceptions raised by the extraction diagnostics subsystem.

Missing sessions and unknown attempt ranks are not exceptions: they are
logged and ignored so that diagnostics can never break the pipeline they
observe.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class DiagnosticsError(Exception):
    """Base class for diagnostics errors."""


class ConfigurationError(DiagnosticsError):
    """Raised when diagnostics settings are missing or invalid."""


class PersistenceError(DiagnosticsError):
    """Raised when a durable write of a session or artifact fails.

    The in-memory session is left untouched so the write can be retried.
    """

    def __init__(self, message: str, path: Optional[Path] = None):
        super().__init__(message)
        self.path = path
