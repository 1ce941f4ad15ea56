"""Data contracts for a per-task extraction debug session."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, List, Mapping, Optional, Union

from src.shared.batch.memory_monitor import MemoryUsage

from .attempts import known_fields
from .stages import (
    CanvasExtractionDetail,
    MetadataExtractionDetail,
    Stage,
    StageDetail,
    detail_to_dict,
)


@dataclass(slots=True)
class MemorySnapshot:
    """Point-in-time memory usage in MB, rounded to two decimals."""

    heap_used: float = 0.0
    heap_total: float = 0.0
    external: float = 0.0
    rss: float = 0.0

    @classmethod
    def from_usage(cls, usage: MemoryUsage) -> "MemorySnapshot":
        return cls(**usage.to_mb())


@dataclass(slots=True)
class MemoryMark:
    """Heap and resident memory in MB at a task boundary."""

    heap_used: float
    rss: float

    @classmethod
    def coerce(cls, value: Union["MemoryMark", Mapping[str, Any], None]) -> Optional["MemoryMark"]:
        if value is None or isinstance(value, MemoryMark):
            return value
        return cls(heap_used=float(value["heap_used"]), rss=float(value["rss"]))


@dataclass(slots=True)
class StageCheckpoint:
    name: Stage
    timestamp: int
    elapsed: int
    memory: Optional[MemorySnapshot] = None
    detail: Optional[StageDetail] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": self.name.value,
            "timestamp": self.timestamp,
            "elapsed": self.elapsed,
            "memory": asdict(self.memory) if self.memory else None,
        }
        data.update(detail_to_dict(self.detail))
        return data


@dataclass(slots=True)
class ProcessStateUpdate:
    """Partial process state. Fields left as None are not merged."""

    browser_restarts: Optional[int] = None
    memory_at_start: Optional[MemoryMark] = None
    memory_at_end: Optional[MemoryMark] = None
    task_number: Optional[int] = None
    queue_position: Optional[int] = None
    memory_mb: Optional[float] = None
    recycle_reason: Optional[str] = None
    will_recycle: Optional[bool] = None
    browser_restart: Optional[bool] = None
    previous_tasks_completed: Optional[int] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ProcessStateUpdate":
        values = known_fields(cls, data)
        for key in ("memory_at_start", "memory_at_end"):
            values[key] = MemoryMark.coerce(values.get(key))
        return cls(**values)


@dataclass(slots=True)
class ProcessState:
    browser_restarts: int = 0
    memory_at_start: Optional[MemoryMark] = None
    memory_at_end: Optional[MemoryMark] = None
    task_number: Optional[int] = None
    queue_position: Optional[int] = None
    memory_mb: Optional[float] = None
    recycle_reason: Optional[str] = None
    will_recycle: Optional[bool] = None
    browser_restart: Optional[bool] = None
    previous_tasks_completed: Optional[int] = None

    def merge(self, update: ProcessStateUpdate) -> None:
        """Layer the set fields of ``update`` onto this state."""
        for update_field in fields(ProcessStateUpdate):
            value = getattr(update, update_field.name)
            if value is not None:
                setattr(self, update_field.name, value)


@dataclass(slots=True)
class Outcome:
    success: bool = False
    error: Optional[str] = None
    error_stack: Optional[str] = None
    skipped: Optional[bool] = None
    skip_reason: Optional[str] = None
    retry_attempt: Optional[int] = None


@dataclass(slots=True)
class Diagnostics:
    screenshot_path: Optional[str] = None
    html_snapshot_path: Optional[str] = None
    console_logs: Optional[List[str]] = None
    network_errors: Optional[List[str]] = None


@dataclass(slots=True)
class DebugSession:
    """Complete trace of one extraction task."""

    task_id: str
    job_id: str
    target: str
    start_time: int
    end_time: Optional[int] = None
    total_duration: Optional[int] = None
    stages: Dict[Stage, StageCheckpoint] = field(default_factory=dict)
    process_state: ProcessState = field(default_factory=ProcessState)
    outcome: Outcome = field(default_factory=Outcome)
    diagnostics: Optional[Diagnostics] = None

    @property
    def finished(self) -> bool:
        return self.end_time is not None

    @property
    def canvas_detail(self) -> Optional[CanvasExtractionDetail]:
        checkpoint = self.stages.get(Stage.CANVAS_EXTRACTION)
        return checkpoint.detail if checkpoint else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_id": self.task_id,
            "job_id": self.job_id,
            "target": self.target,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "total_duration": self.total_duration,
            "stages": {stage.value: checkpoint.to_dict() for stage, checkpoint in self.stages.items()},
            "process_state": asdict(self.process_state),
            "outcome": asdict(self.outcome),
            "diagnostics": asdict(self.diagnostics) if self.diagnostics else None,
        }

    def summary(self, timestamp: str) -> Dict[str, Any]:
        """Compact summary line for the rolling summary log."""
        canvas = self.canvas_detail
        metadata_checkpoint = self.stages.get(Stage.METADATA_EXTRACTION)
        metadata = metadata_checkpoint.detail if metadata_checkpoint else None
        if not isinstance(metadata, MetadataExtractionDetail):
            metadata = None
        memory_at_end = self.process_state.memory_at_end

        return {
            "timestamp": timestamp,
            "task_id": self.task_id,
            "job_id": self.job_id,
            "duration": self.total_duration,
            "success": self.outcome.success,
            "skipped": self.outcome.skipped,
            "error": self.outcome.error,
            "successful_method": canvas.successful_method if canvas else None,
            "total_method_attempts": canvas.total_attempts if canvas else None,
            "metadata_success": metadata.success if metadata else None,
            "metadata_timed_out": metadata.timed_out if metadata else None,
            "browser_restarts": self.process_state.browser_restarts,
            "memory_used_mb": memory_at_end.heap_used if memory_at_end else None,
        }


SUMMARY_FIELDS = (
    "timestamp",
    "task_id",
    "job_id",
    "duration",
    "success",
    "skipped",
    "error",
    "successful_method",
    "total_method_attempts",
    "metadata_success",
    "metadata_timed_out",
    "browser_restarts",
    "memory_used_mb",
)
