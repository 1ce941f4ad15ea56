"""Aggregate statistics over persisted debug sessions."""

from .method_statistics import (
    NO_DATA_MESSAGE,
    MethodStatisticsReport,
    MethodStats,
    StatisticsAggregator,
    compute_method_statistics,
)

__all__ = [
    "NO_DATA_MESSAGE",
    "MethodStatisticsReport",
    "MethodStats",
    "StatisticsAggregator",
    "compute_method_statistics",
]
