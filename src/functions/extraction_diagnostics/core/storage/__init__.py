"""Durable storage for debug sessions."""

from .session_store import (
    HTML_SNAPSHOT_FILENAME,
    SCREENSHOT_FILENAME,
    SUMMARY_FILENAME,
    SessionStore,
    safe_name,
)

__all__ = [
    "HTML_SNAPSHOT_FILENAME",
    "SCREENSHOT_FILENAME",
    "SUMMARY_FILENAME",
    "SessionStore",
    "safe_name",
]
