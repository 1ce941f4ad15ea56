"""Process memory sampling and threshold checks for long-running workers."""

from __future__ import annotations

import gc
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import psutil

logger = logging.getLogger(__name__)

BYTES_PER_MB = 1024 * 1024

# Heap growth since baseline above this is reported as a warning
DEFAULT_GROWTH_WARNING_MB = 200.0


def bytes_to_mb(value: float) -> float:
    """Convert bytes to megabytes rounded to two decimals."""
    return round(value / BYTES_PER_MB, 2)


@dataclass(frozen=True)
class MemoryUsage:
    """Raw memory measurement in bytes."""

    heap_used: int = 0
    heap_total: int = 0
    external: int = 0
    rss: int = 0

    @property
    def heap_used_mb(self) -> float:
        return bytes_to_mb(self.heap_used)

    def to_mb(self) -> Dict[str, float]:
        """Return the measurement as a dict of megabyte values."""
        return {
            "heap_used": bytes_to_mb(self.heap_used),
            "heap_total": bytes_to_mb(self.heap_total),
            "external": bytes_to_mb(self.external),
            "rss": bytes_to_mb(self.rss),
        }


class ProcessMemoryProbe:
    """Reads memory usage of the current process through psutil.

    Unique set size is reported as heap used since it is the memory that
    goes away when the process exits. Virtual size stands in for heap total
    and shared pages for external memory.

    Reading USS walks the full memory map of the process, which is slow for
    large processes. Pass ``use_uss=False`` on hot paths to report RSS as
    heap used instead.

    Args:
        collect: Optional forced garbage collection hook. ``None`` disables it.
        process: psutil process to sample (defaults to the current process)
        use_uss: Report unique set size as heap used
    """

    def __init__(
        self,
        collect: Optional[Callable[[], Any]] = gc.collect,
        process: Optional[psutil.Process] = None,
        use_uss: bool = True,
    ):
        self.collect = collect
        self._process = process or psutil.Process()
        self._full_info_supported = use_uss

    def sample(self) -> MemoryUsage:
        """Measure the process. Raises ``psutil.Error`` or ``OSError`` on failure."""
        info = self._process.memory_info()
        heap_used = info.rss
        if self._full_info_supported:
            try:
                heap_used = self._process.memory_full_info().uss
            except (psutil.AccessDenied, AttributeError, NotImplementedError):
                logger.debug("USS unavailable, using RSS as heap used")
                self._full_info_supported = False
        return MemoryUsage(
            heap_used=heap_used,
            heap_total=info.vms,
            external=getattr(info, "shared", 0),
            rss=info.rss,
        )


class MemoryMonitor:
    """Tracks memory of a worker process relative to a baseline.

    The baseline is taken by :meth:`start` and re-taken on every start, so a
    monitor can be reused across worker lifetimes. Sampling never raises: on
    measurement errors the last good sample is reused.

    Example:
        monitor = MemoryMonitor()
        monitor.start()

        # ... process tasks ...

        monitor.report("After batch")
        if monitor.should_recycle(300):
            restart_worker()
    """

    def __init__(
        self,
        probe: Optional[ProcessMemoryProbe] = None,
        *,
        force_gc: bool = True,
        growth_warning_mb: float = DEFAULT_GROWTH_WARNING_MB,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize memory monitor.

        Args:
            probe: Memory probe (defaults to psutil-backed probe of this process)
            force_gc: Request a collection before baseline and report samples
            growth_warning_mb: Growth over baseline that is logged as a warning
            clock: Monotonic clock in seconds
        """
        self.probe = probe or ProcessMemoryProbe()
        self.force_gc = force_gc
        self.growth_warning_mb = growth_warning_mb
        self._clock = clock

        self._baseline = MemoryUsage()
        self._baseline_time = clock()
        self._last_sample = MemoryUsage()

    @property
    def baseline_heap_used_mb(self) -> float:
        return self._baseline.heap_used_mb

    def start(self) -> None:
        """Record the current heap usage and time as the new baseline."""
        self._collect()
        self._baseline = self.sample()
        self._baseline_time = self._clock()
        logger.info("Memory monitor baseline: heap %.2fMB", self._baseline.heap_used_mb)

    def sample(self) -> MemoryUsage:
        """Take a fresh measurement, falling back to the last good one."""
        try:
            usage = self.probe.sample()
        except Exception as e:
            logger.warning("Memory sampling failed, reusing last sample: %s", e)
            return self._last_sample
        self._last_sample = usage
        return usage

    def elapsed_seconds(self) -> float:
        return self._clock() - self._baseline_time

    def report(self, label: str = "Current") -> Dict[str, float]:
        """Log a memory snapshot against the baseline.

        Args:
            label: Short description of the point being reported

        Returns:
            Dict with the reported megabyte values, elapsed seconds and growth
        """
        values = self.measure().to_mb()
        growth_mb = round(values["heap_used"] - self._baseline.heap_used_mb, 2)
        elapsed = self.elapsed_seconds()

        logger.info(
            "%s (%.1fs): heap %.2fMB / %.2fMB | RSS %.2fMB | external %.2fMB | growth %.2fMB",
            label,
            elapsed,
            values["heap_used"],
            values["heap_total"],
            values["rss"],
            values["external"],
            growth_mb,
        )
        if growth_mb > self.growth_warning_mb:
            logger.warning("Significant memory growth detected (%.2fMB)", growth_mb)

        values.update({"elapsed_seconds": round(elapsed, 1), "growth": growth_mb})
        return values

    def measure(self) -> MemoryUsage:
        """Collect if enabled, then take a fresh sample."""
        self._collect()
        return self.sample()

    def current_heap_used_mb(self) -> float:
        return self.measure().heap_used_mb

    def should_recycle(
        self, max_memory_mb: float, usage: Optional[MemoryUsage] = None
    ) -> bool:
        """Return True when heap usage exceeds ``max_memory_mb``.

        A fresh measurement is taken unless ``usage`` is supplied.
        """
        if usage is None:
            usage = self.measure()
        heap_used_mb = usage.heap_used_mb
        if heap_used_mb > max_memory_mb:
            logger.warning(
                "Memory threshold exceeded: %.2fMB > %sMB", heap_used_mb, max_memory_mb
            )
            return True
        return False

    def _collect(self) -> None:
        collect = getattr(self.probe, "collect", None)
        if not self.force_gc or collect is None:
            return
        try:
            collect()
        except Exception as e:
            logger.debug("Forced collection unavailable: %s", e)
