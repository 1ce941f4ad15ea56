import logging
from types import SimpleNamespace

from src.shared.batch.memory_monitor import (
    BYTES_PER_MB,
    MemoryMonitor,
    MemoryUsage,
    ProcessMemoryProbe,
    bytes_to_mb,
)


def test_bytes_to_mb_rounds_to_two_decimals():
    assert bytes_to_mb(1024 * 1024) == 1.0
    assert bytes_to_mb(1_234_567) == 1.18


def test_start_collects_and_records_baseline(fake_probe, fake_monitor):
    fake_probe.heap_used_mb = 80.0

    fake_monitor.start()

    assert fake_probe.collect_calls == 1
    assert fake_monitor.baseline_heap_used_mb == 80.0


def test_start_skips_collection_when_disabled(fake_probe, fake_clock):
    monitor = MemoryMonitor(fake_probe, force_gc=False, clock=fake_clock)

    monitor.start()

    assert fake_probe.collect_calls == 0


def test_start_survives_failing_collection(fake_probe, fake_monitor):
    def broken_collect():
        raise RuntimeError("collection refused")

    fake_probe.collect = broken_collect

    fake_monitor.start()

    assert fake_monitor.baseline_heap_used_mb == 50.0


def test_should_recycle_is_threshold_on_current_heap(fake_probe, fake_monitor):
    fake_monitor.start()

    fake_probe.heap_used_mb = 300.0
    assert fake_monitor.should_recycle(300) is False

    fake_probe.heap_used_mb = 300.5
    assert fake_monitor.should_recycle(300) is True


def test_report_flags_large_growth(fake_probe, fake_clock, fake_monitor, caplog):
    fake_monitor.start()
    fake_clock.now += 12.0
    fake_probe.heap_used_mb = 275.0

    with caplog.at_level(logging.INFO, logger="src.shared.batch.memory_monitor"):
        values = fake_monitor.report("After 3 tasks")

    assert values["growth"] == 225.0
    assert values["elapsed_seconds"] == 12.0
    assert values["heap_used"] == 275.0
    assert any("Significant memory growth" in record.message for record in caplog.records)


def test_report_growth_below_warning_is_not_flagged(fake_probe, fake_monitor, caplog):
    fake_monitor.start()
    fake_probe.heap_used_mb = 150.0

    with caplog.at_level(logging.INFO, logger="src.shared.batch.memory_monitor"):
        values = fake_monitor.report()

    assert values["growth"] == 100.0
    assert not any(record.levelno == logging.WARNING for record in caplog.records)


def test_sampling_errors_reuse_last_good_sample(fake_probe, fake_monitor):
    fake_probe.heap_used_mb = 120.0
    fake_monitor.start()

    fake_probe.fail = True

    assert fake_monitor.current_heap_used_mb() == 120.0
    assert fake_monitor.should_recycle(100) is True


def test_sampling_error_before_any_sample_reports_zero(fake_probe, fake_monitor):
    fake_probe.fail = True

    assert fake_monitor.sample() == MemoryUsage()
    assert fake_monitor.should_recycle(300) is False


def test_process_probe_reads_current_process():
    usage = ProcessMemoryProbe(collect=None).sample()

    assert usage.rss > 0
    assert 0 < usage.heap_used <= usage.rss


class _StubProcess:
    """psutil.Process stand-in that counts full memory map reads."""

    def __init__(self):
        self.full_info_calls = 0

    def memory_info(self):
        return SimpleNamespace(rss=300 * BYTES_PER_MB, vms=900 * BYTES_PER_MB, shared=40 * BYTES_PER_MB)

    def memory_full_info(self):
        self.full_info_calls += 1
        return SimpleNamespace(uss=120 * BYTES_PER_MB)


def test_process_probe_reports_uss_as_heap_used():
    process = _StubProcess()

    usage = ProcessMemoryProbe(collect=None, process=process).sample()

    assert usage.heap_used_mb == 120.0
    assert usage.to_mb() == {"heap_used": 120.0, "heap_total": 900.0, "external": 40.0, "rss": 300.0}
    assert process.full_info_calls == 1


def test_process_probe_without_uss_skips_full_memory_map():
    process = _StubProcess()
    probe = ProcessMemoryProbe(collect=None, process=process, use_uss=False)

    usage = probe.sample()
    probe.sample()

    assert usage.heap_used_mb == 300.0
    assert process.full_info_calls == 0
