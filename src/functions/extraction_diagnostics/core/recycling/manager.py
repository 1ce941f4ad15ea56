"""Worker recycling policy: retire a worker after N tasks or on memory pressure."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from src.shared.batch.memory_monitor import MemoryMonitor, bytes_to_mb

from ..contracts.session import ProcessStateUpdate
from ..tracking.session_tracker import SessionTracker

logger = logging.getLogger(__name__)

DEFAULT_MAX_TASKS_PER_CYCLE = 1
DEFAULT_MEMORY_THRESHOLD_MB = 300.0


class CycleState(str, Enum):
    ACTIVE = "active"  # Accepting tasks
    EXHAUSTED = "exhausted"  # Recycle decided, waiting for reset


@dataclass(frozen=True)
class RecycleDecision:
    recycle: bool
    reason: Optional[str]
    tasks_completed: int
    heap_used_mb: float


class ProcessRecyclingManager:
    """Decides when a worker must be destroyed and relaunched.

    A recycle is due once ``max_tasks_per_cycle`` tasks have completed or
    the heap in use exceeds ``memory_threshold_mb``. The manager only
    decides; the caller relaunches the worker and then calls :meth:`reset`.

    ``record_task_complete`` followed by ``should_recycle`` is not atomic.
    Callers completing tasks from several threads should use
    :meth:`record_and_check` instead.

    Example:
        manager = ProcessRecyclingManager(max_tasks_per_cycle=5, session_tracker=tracker)

        for task in tasks:
            run(task)
            if manager.record_and_check(task.id):
                relaunch_browser()
                manager.reset(next_task_id)
    """

    def __init__(
        self,
        max_tasks_per_cycle: int = DEFAULT_MAX_TASKS_PER_CYCLE,
        memory_threshold_mb: float = DEFAULT_MEMORY_THRESHOLD_MB,
        *,
        session_tracker: Optional[SessionTracker] = None,
        monitor: Optional[MemoryMonitor] = None,
    ):
        """Initialize the recycling manager and take the memory baseline.

        Args:
            max_tasks_per_cycle: Tasks a worker may complete before recycling
            memory_threshold_mb: Heap usage that forces a recycle
            session_tracker: Tracker that receives recycle and restart events
            monitor: Memory monitor (defaults to one for this process)

        Raises:
            ValueError: If a limit is not positive
        """
        if max_tasks_per_cycle < 1:
            raise ValueError("max_tasks_per_cycle must be at least 1")
        if memory_threshold_mb <= 0:
            raise ValueError("memory_threshold_mb must be positive")

        self.max_tasks_per_cycle = max_tasks_per_cycle
        self.memory_threshold_mb = memory_threshold_mb
        self.session_tracker = session_tracker
        self.monitor = monitor or MemoryMonitor()

        self._tasks_completed = 0
        self._state = CycleState.ACTIVE
        self._last_decision: Optional[RecycleDecision] = None
        self.lock = threading.RLock()

        self.monitor.start()

    @classmethod
    def from_settings(
        cls,
        settings,
        *,
        session_tracker: Optional[SessionTracker] = None,
        monitor: Optional[MemoryMonitor] = None,
    ) -> "ProcessRecyclingManager":
        """Build a manager from DiagnosticsSettings."""
        if monitor is None:
            monitor = MemoryMonitor(
                force_gc=settings.force_gc,
                growth_warning_mb=settings.memory_growth_warning_mb,
            )
        return cls(
            settings.max_tasks_per_cycle,
            settings.memory_threshold_mb,
            session_tracker=session_tracker,
            monitor=monitor,
        )

    @property
    def state(self) -> CycleState:
        return self._state

    @property
    def last_decision(self) -> Optional[RecycleDecision]:
        return self._last_decision

    def get_tasks_completed(self) -> int:
        return self._tasks_completed

    def record_task_complete(self) -> None:
        """Count one finished task, whatever its outcome."""
        with self.lock:
            self._tasks_completed += 1

    def evaluate(self, task_id: Optional[str] = None) -> RecycleDecision:
        """Evaluate the recycle policy against a fresh memory measurement."""
        with self.lock:
            tasks_completed = self._tasks_completed
            task_limit_reached = tasks_completed >= self.max_tasks_per_cycle

            usage = self.monitor.measure()
            heap_used_mb = usage.heap_used_mb
            memory_exceeded = self.monitor.should_recycle(self.memory_threshold_mb, usage)

            reason = None
            if task_limit_reached:
                reason = f"task limit ({tasks_completed}/{self.max_tasks_per_cycle})"
                logger.info("Task limit reached (%d/%d)", tasks_completed, self.max_tasks_per_cycle)
            elif memory_exceeded:
                reason = f"memory threshold ({heap_used_mb:.2f}MB > {self.memory_threshold_mb:g}MB)"

            decision = RecycleDecision(
                recycle=reason is not None,
                reason=reason,
                tasks_completed=tasks_completed,
                heap_used_mb=heap_used_mb,
            )
            self._last_decision = decision
            if not decision.recycle:
                return decision

            self._state = CycleState.EXHAUSTED

        logger.info("Recycling needed: %s", reason)
        logger.info(
            "Memory stats: heap %.2fMB/%.2fMB, RSS %.2fMB",
            heap_used_mb,
            bytes_to_mb(usage.heap_total),
            bytes_to_mb(usage.rss),
        )
        if task_id and self.session_tracker is not None:
            self.session_tracker.merge_process_state(
                task_id,
                ProcessStateUpdate(
                    task_number=tasks_completed,
                    memory_mb=heap_used_mb,
                    recycle_reason=reason,
                    will_recycle=True,
                ),
            )
        return decision

    def should_recycle(self, task_id: Optional[str] = None) -> bool:
        """Return True when the worker should be recycled.

        The task limit is checked first and wins the reported reason when
        both limits are hit. With ``task_id``, the decision is recorded in
        that task's process state.
        """
        return self.evaluate(task_id).recycle

    def record_and_check(self, task_id: Optional[str] = None) -> bool:
        """Count a finished task and evaluate the policy under one lock."""
        with self.lock:
            self.record_task_complete()
            return self.should_recycle(task_id)

    def report_status(self) -> Dict[str, float]:
        """Log the task count and a full memory report."""
        logger.info("Tasks completed: %d (state: %s)", self._tasks_completed, self._state.value)
        return self.monitor.report(f"After {self._tasks_completed} tasks")

    def reset(self, task_id: Optional[str] = None) -> None:
        """Start a new worker lifetime.

        Args:
            task_id: Task that will run on the fresh worker; receives a
                browser restart event in its process state
        """
        with self.lock:
            previous_tasks = self._tasks_completed
            self._tasks_completed = 0
            self.monitor.start()
            self._state = CycleState.ACTIVE
            self._last_decision = None

        logger.info("Cycle reset after %d tasks, ready for new process", previous_tasks)

        if task_id and self.session_tracker is not None:
            self.session_tracker.record_browser_restart(
                task_id,
                previous_tasks_completed=previous_tasks,
                memory_mb=self.monitor.baseline_heap_used_mb,
            )
