"""Per-task stage checkpoints."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Union

from ..contracts.session import MemorySnapshot, StageCheckpoint
from ..contracts.stages import (
    CanvasExtractionDetail,
    Stage,
    StageDetail,
    coerce_detail,
)

logger = logging.getLogger(__name__)


class CheckpointStore:
    """Writes timestamped stage checkpoints into one session's stage map.

    Keys are unique per stage, so recording a stage twice replaces the
    earlier checkpoint. The canvas extraction stage is the exception: its
    recorded method attempts survive a later checkpoint of the same stage.
    """

    def __init__(self, checkpoints: Dict[Stage, StageCheckpoint], session_start: int):
        self._checkpoints = checkpoints
        self.session_start = session_start

    def record(
        self,
        stage: Stage,
        timestamp: int,
        memory: Optional[MemorySnapshot] = None,
        detail: Union[StageDetail, Mapping[str, Any], None] = None,
    ) -> StageCheckpoint:
        """Write the checkpoint for ``stage``.

        A detail that does not fit the stage is dropped with a warning and
        the checkpoint is recorded without it.
        """
        try:
            stage_detail = coerce_detail(stage, detail)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning("Ignoring detail for stage %s: %r", stage.value, e)
            stage_detail = None

        if stage is Stage.CANVAS_EXTRACTION:
            stage_detail = self._merge_canvas_detail(stage_detail)

        checkpoint = StageCheckpoint(
            name=stage,
            timestamp=timestamp,
            elapsed=max(0, timestamp - self.session_start),
            memory=memory,
            detail=stage_detail,
        )
        self._checkpoints[stage] = checkpoint
        return checkpoint

    def canvas_detail(self, created_at: int) -> CanvasExtractionDetail:
        """Return the canvas extraction detail, creating its checkpoint if absent."""
        checkpoint = self._checkpoints.get(Stage.CANVAS_EXTRACTION)
        if checkpoint is None:
            checkpoint = StageCheckpoint(
                name=Stage.CANVAS_EXTRACTION,
                timestamp=created_at,
                elapsed=max(0, created_at - self.session_start),
                detail=CanvasExtractionDetail(),
            )
            self._checkpoints[Stage.CANVAS_EXTRACTION] = checkpoint
        return checkpoint.detail

    def existing_canvas_detail(self) -> Optional[CanvasExtractionDetail]:
        checkpoint = self._checkpoints.get(Stage.CANVAS_EXTRACTION)
        return checkpoint.detail if checkpoint else None

    def get(self, stage: Stage) -> Optional[StageCheckpoint]:
        return self._checkpoints.get(stage)

    def names(self) -> List[str]:
        return [stage.value for stage in self._checkpoints]

    def _merge_canvas_detail(
        self, detail: Optional[CanvasExtractionDetail]
    ) -> CanvasExtractionDetail:
        existing = self.existing_canvas_detail()
        if detail is None:
            return existing or CanvasExtractionDetail()
        if existing is not None and existing is not detail and not detail.methods:
            detail.methods = existing.methods
            detail.total_attempts = existing.total_attempts
            detail.successful_method = existing.successful_method
        return detail
