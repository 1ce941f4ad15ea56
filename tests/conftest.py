"""Shared fakes for the diagnostics tests."""

import pytest

from src.shared.batch.memory_monitor import BYTES_PER_MB, MemoryMonitor, MemoryUsage


class FakeProbe:
    """Memory probe reporting a configurable heap size."""

    def __init__(self, heap_used_mb=50.0):
        self.heap_used_mb = heap_used_mb
        self.collect_calls = 0
        self.fail = False

    def collect(self):
        self.collect_calls += 1

    def sample(self):
        if self.fail:
            raise OSError("memory info denied")
        heap = int(self.heap_used_mb * BYTES_PER_MB)
        return MemoryUsage(
            heap_used=heap,
            heap_total=heap * 2,
            external=5 * BYTES_PER_MB,
            rss=heap + 20 * BYTES_PER_MB,
        )


class FakeClock:
    """Wall clock in seconds that only moves when told to."""

    def __init__(self, start=1_700_000_000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance_ms(self, milliseconds):
        self.now += milliseconds / 1000


@pytest.fixture
def fake_probe():
    return FakeProbe()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def fake_monitor(fake_probe, fake_clock):
    return MemoryMonitor(fake_probe, clock=fake_clock)
