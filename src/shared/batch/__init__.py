"""Shared batch processing infrastructure.

Provides generic utilities for long-running worker pipelines:
- MemoryMonitor: Process memory baseline, growth reports and threshold checks
- ProcessMemoryProbe: psutil-backed memory sampling of the current process
- MemoryUsage: Raw memory measurement in bytes

Usage:
    from src.shared.batch import MemoryMonitor

    monitor = MemoryMonitor()
    monitor.start()
"""

from .memory_monitor import MemoryMonitor, MemoryUsage, ProcessMemoryProbe, bytes_to_mb

__all__ = [
    "MemoryMonitor",
    "MemoryUsage",
    "ProcessMemoryProbe",
    "bytes_to_mb",
]
