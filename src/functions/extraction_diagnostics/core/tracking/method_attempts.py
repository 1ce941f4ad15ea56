"""Fallback chain bookkeeping for the canvas extraction stage."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Union

from ..contracts.attempts import DomState, ExtractionDetail, MethodAttempt
from ..contracts.stages import CanvasExtractionDetail

logger = logging.getLogger(__name__)


class MethodAttemptTracker:
    """Appends ranked method attempts and records their results.

    Ranks start at 1 and must strictly increase in call order, which keeps
    them unique within a session.
    """

    def __init__(self, detail: CanvasExtractionDetail):
        self.detail = detail

    @property
    def last_rank(self) -> int:
        return self.detail.methods[-1].rank if self.detail.methods else 0

    def begin(self, method_name: str, rank: int, start_time: int) -> Optional[MethodAttempt]:
        """Append a new attempt. Returns None when the rank is rejected."""
        if rank < 1:
            logger.warning("Rejected attempt %r: rank must be >= 1, got %d", method_name, rank)
            return None
        if rank <= self.last_rank:
            logger.warning(
                "Rejected attempt %r: rank %d does not follow rank %d",
                method_name,
                rank,
                self.last_rank,
            )
            return None

        attempt = MethodAttempt(method_name=method_name, rank=rank, start_time=start_time)
        self.detail.methods.append(attempt)
        self.detail.total_attempts += 1
        return attempt

    def find(self, rank: int) -> Optional[MethodAttempt]:
        for attempt in self.detail.methods:
            if attempt.rank == rank:
                return attempt
        return None

    def record_result(
        self,
        rank: int,
        end_time: int,
        success: bool,
        error: Optional[str] = None,
        dom_state: Union[DomState, Mapping[str, Any], None] = None,
        extraction_detail: Union[ExtractionDetail, Mapping[str, Any], None] = None,
    ) -> Optional[MethodAttempt]:
        """Close the attempt with ``rank``. Returns None if it was never begun."""
        attempt = self.find(rank)
        if attempt is None:
            return None

        dom_state = self._coerce_payload(attempt, "dom_state", DomState.coerce, dom_state)
        extraction_detail = self._coerce_payload(
            attempt, "extraction_detail", ExtractionDetail.coerce, extraction_detail
        )

        attempt.end_time = end_time
        attempt.duration = max(0, end_time - attempt.start_time)
        attempt.success = success
        attempt.error = error
        attempt.dom_state = dom_state
        attempt.extraction_detail = extraction_detail
        self._refresh_successful_method()
        return attempt

    @staticmethod
    def _coerce_payload(attempt: MethodAttempt, name: str, coerce, value):
        try:
            return coerce(value)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning(
                "Ignoring malformed %s for attempt %r (rank %d): %r",
                name,
                attempt.method_name,
                attempt.rank,
                e,
            )
            return None

    def _refresh_successful_method(self) -> None:
        # Lowest rank wins regardless of the order results arrive in
        successful = [attempt for attempt in self.detail.methods if attempt.success]
        if successful:
            self.detail.successful_method = min(successful, key=lambda a: a.rank).method_name
        else:
            self.detail.successful_method = None
