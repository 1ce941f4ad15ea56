"""Per-task debug session tracking for the extraction pipeline.

Every extraction task gets one session. The pipeline records stage
checkpoints and fallback-chain method attempts into it while the task runs,
then ends the session, which writes the full record and appends a line to
the summary log.

Diagnostics must never break the pipeline they observe: any call that names
a task without a live session logs a warning and does nothing. Only durable
writes raise, as PersistenceError, and leave the session live for a retry.

Usage:
    tracker = SessionTracker(SessionStore("logs/debug-sessions"))

    tracker.start(task_id, job_id, url)
    tracker.checkpoint(task_id, Stage.NAVIGATION, {"navigation_attempt": 1, "max_attempts": 3})

    tracker.begin_attempt(task_id, "viewport-render", 1)
    tracker.record_attempt_result(task_id, 1, success=True)

    tracker.finish(task_id, success=True)
    tracker.end(task_id)
"""

from __future__ import annotations

import logging
import threading
import time
import traceback
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Union

from src.shared.batch.memory_monitor import MemoryMonitor, ProcessMemoryProbe, bytes_to_mb

from ..contracts.attempts import DomState, ExtractionDetail, MethodAttempt
from ..contracts.session import (
    DebugSession,
    Diagnostics,
    MemoryMark,
    MemorySnapshot,
    ProcessStateUpdate,
    StageCheckpoint,
)
from ..contracts.stages import Stage, StageDetail, parse_stage
from ..errors import PersistenceError
from ..storage.session_store import HTML_SNAPSHOT_FILENAME, SCREENSHOT_FILENAME, SessionStore
from .checkpoint_store import CheckpointStore
from .method_attempts import MethodAttemptTracker

logger = logging.getLogger(__name__)


class SessionTracker:
    """Owns the live debug sessions of all tasks running in this process.

    The live-session map is shared between worker threads and guarded by a
    lock. A single session is only ever mutated by the task that owns it.
    """

    def __init__(
        self,
        store: SessionStore,
        *,
        memory_monitor: Optional[MemoryMonitor] = None,
        clock: Callable[[], float] = time.time,
        stale_session_timeout_seconds: Optional[float] = None,
    ):
        """Initialize session tracker.

        Args:
            store: Durable storage for session records and artifacts
            memory_monitor: Source of memory snapshots (RSS only, no forced GC by default)
            clock: Wall clock in seconds since the epoch
            stale_session_timeout_seconds: Default age for reap_stale_sessions
        """
        self.store = store
        self.memory_monitor = memory_monitor or MemoryMonitor(
            ProcessMemoryProbe(collect=None, use_uss=False), force_gc=False
        )
        self.stale_session_timeout_seconds = stale_session_timeout_seconds
        self._clock = clock
        self._sessions: Dict[str, DebugSession] = {}
        self.lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings, *, memory_monitor: Optional[MemoryMonitor] = None) -> "SessionTracker":
        """Build a tracker from DiagnosticsSettings."""
        return cls(
            SessionStore(settings.sessions_dir, settings.summary_filename),
            memory_monitor=memory_monitor,
            stale_session_timeout_seconds=settings.stale_session_timeout_seconds,
        )

    def now_ms(self) -> int:
        return int(round(self._clock() * 1000))

    # -- lookup -----------------------------------------------------------

    def get_session(self, task_id: str) -> Optional[DebugSession]:
        with self.lock:
            return self._sessions.get(task_id)

    def active_task_ids(self) -> List[str]:
        with self.lock:
            return list(self._sessions)

    def _require(self, task_id: str, operation: str) -> Optional[DebugSession]:
        session = self.get_session(task_id)
        if session is None:
            logger.warning("No session found for %s (%s ignored)", task_id, operation)
        return session

    def _memory_snapshot(self) -> MemorySnapshot:
        return MemorySnapshot.from_usage(self.memory_monitor.sample())

    def _memory_mark(self) -> MemoryMark:
        usage = self.memory_monitor.sample()
        return MemoryMark(heap_used=bytes_to_mb(usage.heap_used), rss=bytes_to_mb(usage.rss))

    # -- lifecycle --------------------------------------------------------

    def start(self, task_id: str, job_id: str, target: str) -> Optional[DebugSession]:
        """Open a session for ``task_id``. A second start for a live task is ignored."""
        session = DebugSession(
            task_id=task_id,
            job_id=job_id,
            target=target,
            start_time=self.now_ms(),
        )
        session.process_state.memory_at_start = self._memory_mark()

        with self.lock:
            if task_id in self._sessions:
                logger.warning("Session for %s already started, ignoring start", task_id)
                return None
            self._sessions[task_id] = session

        logger.info("[%s] Started debug session (job %s)", task_id, job_id)
        return session

    def checkpoint(
        self,
        task_id: str,
        stage: Union[Stage, str],
        detail: Union[StageDetail, Mapping[str, Any], None] = None,
    ) -> Optional[StageCheckpoint]:
        """Record that ``stage`` was reached, with an optional stage detail."""
        session = self._require(task_id, "checkpoint")
        if session is None:
            return None
        try:
            stage = parse_stage(stage)
        except ValueError:
            logger.warning("[%s] Unknown stage %r ignored", task_id, stage)
            return None

        store = CheckpointStore(session.stages, session.start_time)
        checkpoint = store.record(stage, self.now_ms(), self._memory_snapshot(), detail)
        logger.debug(
            "[%s] %s @ %dms | heap %.2fMB",
            task_id,
            stage.value,
            checkpoint.elapsed,
            checkpoint.memory.heap_used if checkpoint.memory else 0,
        )
        return checkpoint

    def begin_attempt(
        self,
        task_id: str,
        method_name: str,
        rank: int,
        start_time: Optional[int] = None,
    ) -> Optional[MethodAttempt]:
        """Record the start of a fallback-chain method.

        Args:
            task_id: Task identifier
            method_name: Extraction method name
            rank: 1-based position within the fallback chain
            start_time: Epoch milliseconds (defaults to now)
        """
        session = self._require(task_id, "begin_attempt")
        if session is None:
            return None
        if start_time is None:
            start_time = self.now_ms()

        store = CheckpointStore(session.stages, session.start_time)
        attempt = MethodAttemptTracker(store.canvas_detail(start_time)).begin(
            method_name, rank, start_time
        )
        if attempt is not None:
            logger.debug("[%s] Method %d: %s starting", task_id, rank, method_name)
        return attempt

    def record_attempt_result(
        self,
        task_id: str,
        rank: int,
        success: bool,
        error: Optional[str] = None,
        dom_state: Union[DomState, Mapping[str, Any], None] = None,
        extraction_detail: Union[ExtractionDetail, Mapping[str, Any], None] = None,
    ) -> Optional[MethodAttempt]:
        """Close the method attempt with ``rank``."""
        session = self._require(task_id, "record_attempt_result")
        if session is None:
            return None

        canvas = CheckpointStore(session.stages, session.start_time).existing_canvas_detail()
        attempt = None
        if canvas is not None:
            attempt = MethodAttemptTracker(canvas).record_result(
                rank, self.now_ms(), success, error, dom_state, extraction_detail
            )
        if attempt is None:
            logger.warning("[%s] No method attempt with rank %d, result ignored", task_id, rank)
            return None

        logger.info(
            "[%s] Method %d: %s %s (%dms)%s%s",
            task_id,
            rank,
            attempt.method_name,
            "SUCCESS" if success else "FAILED",
            attempt.duration,
            f" {attempt.dom_state.describe()}" if attempt.dom_state else "",
            f" - {error}" if error else "",
        )
        return attempt

    def merge_process_state(
        self, task_id: str, update: Union[ProcessStateUpdate, Mapping[str, Any]]
    ) -> None:
        """Layer a partial process state onto the session's process state."""
        session = self._require(task_id, "merge_process_state")
        if session is None:
            return
        if not isinstance(update, ProcessStateUpdate):
            try:
                update = ProcessStateUpdate.from_mapping(update)
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                logger.warning("[%s] Ignoring malformed process state update: %r", task_id, e)
                return
        session.process_state.merge(update)

    def record_browser_restart(
        self,
        task_id: str,
        previous_tasks_completed: int,
        memory_mb: Optional[float] = None,
    ) -> None:
        """Count a browser restart that happened before this task."""
        session = self._require(task_id, "record_browser_restart")
        if session is None:
            return
        session.process_state.merge(
            ProcessStateUpdate(
                browser_restarts=session.process_state.browser_restarts + 1,
                task_number=0,
                memory_mb=memory_mb,
                browser_restart=True,
                previous_tasks_completed=previous_tasks_completed,
            )
        )

    def finish(
        self,
        task_id: str,
        success: bool,
        error: Optional[str] = None,
        error_stack: Optional[str] = None,
        skipped: Optional[bool] = None,
        skip_reason: Optional[str] = None,
        retry_attempt: Optional[int] = None,
    ) -> None:
        """Record the terminal outcome. Calling it again overwrites the outcome."""
        session = self._require(task_id, "finish")
        if session is None:
            return

        session.end_time = self.now_ms()
        session.total_duration = session.end_time - session.start_time
        outcome = session.outcome
        outcome.success = success
        outcome.error = error
        outcome.error_stack = error_stack
        outcome.skipped = skipped
        outcome.skip_reason = skip_reason
        outcome.retry_attempt = retry_attempt

        status = "SUCCESS" if success else "SKIPPED" if skipped else "FAILED"
        logger.info("[%s] Session complete - %s (%dms)", task_id, status, session.total_duration)

    def end(self, task_id: str) -> Optional[Path]:
        """Persist the session, append its summary line and drop it.

        Returns:
            Path of the written session record, or None without a live session

        Raises:
            PersistenceError: If a write fails. The session stays live.
        """
        session = self._require(task_id, "end")
        if session is None:
            return None

        if session.end_time is None:
            session.end_time = self.now_ms()
            session.total_duration = session.end_time - session.start_time
        if session.process_state.memory_at_end is None:
            session.process_state.memory_at_end = self._memory_mark()

        path = self.store.write_session(task_id, session.end_time, session.to_dict())
        self.store.append_summary(session.summary(self._iso_timestamp()))

        with self.lock:
            self._sessions.pop(task_id, None)
        logger.info("[%s] Session saved to %s", task_id, path)
        return path

    def save_diagnostics(
        self,
        task_id: str,
        screenshot: Optional[bytes] = None,
        html_snapshot: Optional[str] = None,
        console_logs: Optional[List[str]] = None,
        network_errors: Optional[List[str]] = None,
    ) -> Optional[Diagnostics]:
        """Write failure artifacts and attach them to the live session.

        Raises:
            PersistenceError: If an artifact cannot be written
        """
        session = self._require(task_id, "save_diagnostics")
        if session is None:
            return None
        if session.diagnostics is None:
            session.diagnostics = Diagnostics()
        diagnostics = session.diagnostics

        if screenshot:
            path = self.store.write_artifact(task_id, SCREENSHOT_FILENAME, screenshot)
            diagnostics.screenshot_path = str(path)
            logger.info("[%s] Screenshot saved to %s", task_id, path)
        if html_snapshot:
            path = self.store.write_artifact(task_id, HTML_SNAPSHOT_FILENAME, html_snapshot)
            diagnostics.html_snapshot_path = str(path)
            logger.info("[%s] HTML snapshot saved to %s", task_id, path)
        if console_logs is not None:
            diagnostics.console_logs = list(console_logs)
        if network_errors is not None:
            diagnostics.network_errors = list(network_errors)
        return diagnostics

    # -- helpers ----------------------------------------------------------

    @contextmanager
    def track(self, task_id: str, job_id: str, target: str) -> Iterator[Optional[DebugSession]]:
        """Start a session for the duration of the block and end it afterwards.

        An exception escaping the block is recorded as a failed outcome and
        re-raised. If persisting the session then fails, the error is logged
        and the session stays live for a later ``end``, so the caller still
        sees the original exception. A persistence failure after a clean
        block is raised. If a session for the task is already live the block
        runs untracked and that session is left alone.
        """
        session = self.start(task_id, job_id, target)
        if session is None:
            yield None
            return
        try:
            yield session
        except BaseException as e:
            if isinstance(e, Exception):
                self.finish(task_id, success=False, error=str(e), error_stack=traceback.format_exc())
            try:
                self.end(task_id)
            except PersistenceError as persist_error:
                logger.error("[%s] Failed to persist session after task error: %s", task_id, persist_error)
            raise
        self.end(task_id)

    def reap_stale_sessions(self, max_age_seconds: Optional[float] = None) -> List[str]:
        """Force-end live sessions that were started too long ago.

        A session is otherwise only written by the task that owns it. Calling
        this from another thread while a stale task is still running breaks
        that single-writer rule for its session; only reap tasks whose owner
        is known to be gone or stuck.

        Args:
            max_age_seconds: Age limit; defaults to the tracker's configured timeout

        Returns:
            Task ids of the sessions that were ended
        """
        timeout = max_age_seconds if max_age_seconds is not None else self.stale_session_timeout_seconds
        if timeout is None:
            logger.debug("No stale session timeout configured, nothing reaped")
            return []

        now = self.now_ms()
        with self.lock:
            stale = [
                task_id
                for task_id, session in self._sessions.items()
                if now - session.start_time > timeout * 1000
            ]

        reaped = []
        for task_id in stale:
            session = self.get_session(task_id)
            if session is not None and not session.finished:
                self.finish(
                    task_id,
                    success=False,
                    error=f"Session abandoned after {timeout:.0f}s without end",
                )
            try:
                self.end(task_id)
            except PersistenceError as e:
                logger.error("[%s] Failed to persist stale session: %s", task_id, e)
                continue
            reaped.append(task_id)

        if reaped:
            logger.warning("Reaped %d stale session(s): %s", len(reaped), ", ".join(reaped))
        return reaped

    def _iso_timestamp(self) -> str:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc).isoformat()
