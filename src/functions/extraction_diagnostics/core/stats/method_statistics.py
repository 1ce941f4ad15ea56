"""Offline statistics over persisted debug sessions."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, ValidationError

from ..storage.session_store import SUMMARY_FILENAME, SessionStore

logger = logging.getLogger(__name__)

NO_DATA_MESSAGE = "No summary data available yet"


class _PersistedAttempt(BaseModel):
    model_config = ConfigDict(extra="ignore")

    method_name: str
    success: bool = False
    duration: Optional[float] = None


class _PersistedCanvasStage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    methods: List[_PersistedAttempt] = []


class _PersistedStages(BaseModel):
    model_config = ConfigDict(extra="ignore")

    canvas_extraction: Optional[_PersistedCanvasStage] = None


class _PersistedSession(BaseModel):
    """The subset of a session record the statistics need."""

    model_config = ConfigDict(extra="ignore")

    task_id: str
    stages: _PersistedStages = _PersistedStages()


@dataclass
class MethodStats:
    attempts: int = 0
    successes: int = 0
    failures: int = 0
    total_duration: float = 0.0

    @property
    def avg_duration(self) -> float:
        """Average duration in ms over all attempts (0 without attempts)."""
        return self.total_duration / self.attempts if self.attempts else 0.0

    @property
    def success_rate(self) -> float:
        return self.successes / self.attempts * 100 if self.attempts else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attempts": self.attempts,
            "successes": self.successes,
            "failures": self.failures,
            "total_duration": self.total_duration,
            "avg_duration": round(self.avg_duration, 2),
            "success_rate": round(self.success_rate, 1),
        }


@dataclass
class MethodStatisticsReport:
    total_sessions: int = 0
    sessions_scanned: int = 0
    skipped_records: int = 0
    skipped_summary_lines: int = 0
    methods: Dict[str, MethodStats] = field(default_factory=dict)
    message: Optional[str] = None

    @property
    def has_data(self) -> bool:
        return self.message is None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "total_sessions": self.total_sessions,
            "sessions_scanned": self.sessions_scanned,
            "skipped_records": self.skipped_records,
            "skipped_summary_lines": self.skipped_summary_lines,
            "method_statistics": {name: stats.to_dict() for name, stats in self.methods.items()},
        }
        if self.message:
            data["message"] = self.message
        return data


class StatisticsAggregator:
    """Computes per-method fallback chain statistics from persisted sessions.

    Method-level detail only exists in the full session records, so every
    record is read. The summary log only provides the session count.
    Malformed or half-written records are skipped and counted.

    Example:
        aggregator = StatisticsAggregator(SessionStore("logs/debug-sessions"))
        report = aggregator.compute_method_statistics()
        for name, stats in report.methods.items():
            print(name, stats.attempts, stats.avg_duration)
    """

    def __init__(self, store: SessionStore):
        self.store = store

    @classmethod
    def for_directory(
        cls, sessions_dir: Union[str, Path], summary_filename: str = SUMMARY_FILENAME
    ) -> "StatisticsAggregator":
        return cls(SessionStore(sessions_dir, summary_filename))

    def compute_method_statistics(self) -> MethodStatisticsReport:
        if not self.store.has_data():
            logger.info(NO_DATA_MESSAGE)
            return MethodStatisticsReport(message=NO_DATA_MESSAGE)

        summary_lines, malformed_lines = self.store.read_summary_lines()
        report = MethodStatisticsReport(
            total_sessions=len(summary_lines),
            skipped_summary_lines=malformed_lines,
        )

        for path, record in self.store.iter_session_records():
            session = self._parse(path, record)
            if session is None:
                report.skipped_records += 1
                continue

            report.sessions_scanned += 1
            canvas = session.stages.canvas_extraction
            if canvas is None:
                continue
            for attempt in canvas.methods:
                stats = report.methods.setdefault(attempt.method_name, MethodStats())
                stats.attempts += 1
                if attempt.success:
                    stats.successes += 1
                else:
                    stats.failures += 1
                if attempt.duration:
                    stats.total_duration += attempt.duration

        if report.skipped_records or report.skipped_summary_lines:
            logger.warning(
                "Skipped %d malformed session record(s) and %d summary line(s)",
                report.skipped_records,
                report.skipped_summary_lines,
            )
        logger.info(
            "Method statistics: %d sessions summarized, %d records scanned, %d methods",
            report.total_sessions,
            report.sessions_scanned,
            len(report.methods),
        )
        return report

    @staticmethod
    def _parse(path: Path, record: Optional[Dict[str, Any]]) -> Optional[_PersistedSession]:
        if record is None:
            return None
        try:
            return _PersistedSession.model_validate(record)
        except ValidationError as e:
            logger.debug("Malformed session record %s: %s", path.name, e)
            return None


def compute_method_statistics(
    sessions_dir: Union[str, Path], summary_filename: str = SUMMARY_FILENAME
) -> MethodStatisticsReport:
    """Convenience wrapper around :class:`StatisticsAggregator`."""
    return StatisticsAggregator.for_directory(sessions_dir, summary_filename).compute_method_statistics()
