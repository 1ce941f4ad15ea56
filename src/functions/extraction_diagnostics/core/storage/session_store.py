"""Durable file storage for debug session records and diagnostic artifacts."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple, Union

from ..errors import PersistenceError

logger = logging.getLogger(__name__)

SUMMARY_FILENAME = "summary.jsonl"
SCREENSHOT_FILENAME = "failure-screenshot.png"
HTML_SNAPSHOT_FILENAME = "failure-dom.html"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def safe_name(value: str) -> str:
    """Make a task id usable as a single path component."""
    cleaned = _UNSAFE_CHARS.sub("_", value).strip(".")
    return cleaned or "_"


class SessionStore:
    """Reads and writes session artifacts under one sessions directory.

    Layout:
        <sessions_dir>/<task_id>_<end_time_ms>.json   full session record
        <sessions_dir>/summary.jsonl                   one summary per line
        <sessions_dir>/<task_id>/failure-*.{png,html}  diagnostic artifacts

    Every write failure is raised as :class:`PersistenceError`.
    """

    def __init__(self, sessions_dir: Union[str, Path], summary_filename: str = SUMMARY_FILENAME):
        self.sessions_dir = Path(sessions_dir)
        self.summary_path = self.sessions_dir / summary_filename

    def ensure_dir(self, path: Optional[Path] = None) -> Path:
        target = path or self.sessions_dir
        try:
            target.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError(f"Failed to create directory {target}: {e}", target) from e
        return target

    def record_path(self, task_id: str, end_time: int) -> Path:
        return self.sessions_dir / f"{safe_name(task_id)}_{end_time}.json"

    def write_session(self, task_id: str, end_time: int, record: Mapping[str, Any]) -> Path:
        """Atomically write a full session record.

        The file name only depends on the task id and end time, so retrying a
        failed write replaces the same file.
        """
        self.ensure_dir()
        path = self.record_path(task_id, end_time)
        temp_path = path.with_suffix(".tmp")
        try:
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(record, f, indent=2)
            temp_path.replace(path)
        except (OSError, TypeError, ValueError) as e:
            temp_path.unlink(missing_ok=True)
            raise PersistenceError(f"Failed to write session record {path}: {e}", path) from e
        logger.debug("Session record written to %s", path)
        return path

    def append_summary(self, line: Mapping[str, Any]) -> None:
        """Append one JSON line to the summary log."""
        self.ensure_dir()
        try:
            serialized = json.dumps(line)
            with open(self.summary_path, "a", encoding="utf-8") as f:
                f.write(serialized + "\n")
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(
                f"Failed to append to summary log {self.summary_path}: {e}", self.summary_path
            ) from e

    def write_artifact(self, task_id: str, filename: str, content: Union[bytes, str]) -> Path:
        """Write a diagnostic artifact into the task's artifact directory."""
        directory = self.ensure_dir(self.sessions_dir / safe_name(task_id))
        path = directory / filename
        try:
            if isinstance(content, bytes):
                path.write_bytes(content)
            else:
                path.write_text(content, encoding="utf-8")
        except OSError as e:
            raise PersistenceError(f"Failed to write artifact {path}: {e}", path) from e
        return path

    def has_data(self) -> bool:
        return self.summary_path.exists() or any(self.list_session_files())

    def list_session_files(self) -> List[Path]:
        if not self.sessions_dir.is_dir():
            return []
        return sorted(
            path
            for path in self.sessions_dir.glob("*.json")
            if path.is_file() and path != self.summary_path
        )

    def iter_session_records(self) -> Iterator[Tuple[Path, Optional[Dict[str, Any]]]]:
        """Yield ``(path, record)`` pairs. ``record`` is None when unreadable."""
        for path in self.list_session_files():
            try:
                with open(path, "r", encoding="utf-8") as f:
                    record = json.load(f)
            except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
                logger.warning("Unreadable session record %s: %s", path.name, e)
                yield path, None
                continue
            yield path, record if isinstance(record, dict) else None

    def read_summary_lines(self) -> Tuple[List[Dict[str, Any]], int]:
        """Return the parsed summary lines and the number of malformed lines."""
        if not self.summary_path.exists():
            return [], 0

        lines: List[Dict[str, Any]] = []
        malformed = 0
        try:
            with open(self.summary_path, "r", encoding="utf-8") as f:
                for raw_line in f:
                    raw_line = raw_line.strip()
                    if not raw_line:
                        continue
                    try:
                        parsed = json.loads(raw_line)
                    except json.JSONDecodeError:
                        malformed += 1
                        continue
                    if isinstance(parsed, dict):
                        lines.append(parsed)
                    else:
                        malformed += 1
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Failed to read summary log %s: %s", self.summary_path, e)
        return lines, malformed
