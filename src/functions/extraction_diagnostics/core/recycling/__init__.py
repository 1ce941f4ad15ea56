"""Worker recycling policy."""

from .manager import CycleState, ProcessRecyclingManager, RecycleDecision

__all__ = ["CycleState", "ProcessRecyclingManager", "RecycleDecision"]
