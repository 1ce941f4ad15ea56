"""Tests for the offline method statistics aggregator."""

from __future__ import annotations

import json

import pytest

from src.functions.extraction_diagnostics.core.stats import (
    NO_DATA_MESSAGE,
    StatisticsAggregator,
    compute_method_statistics,
)
from src.functions.extraction_diagnostics.core.storage import SessionStore
from src.functions.extraction_diagnostics.core.tracking import SessionTracker


def _write_session(directory, task_id, methods):
    record = {
        "task_id": task_id,
        "job_id": "job-1",
        "stages": {
            "canvas_extraction": {
                "name": "canvas_extraction",
                "mode": "fallback",
                "methods": [
                    {"method_name": name, "rank": rank, "success": success, "duration": duration}
                    for rank, (name, success, duration) in enumerate(methods, start=1)
                ],
            }
        },
    }
    (directory / f"{task_id}_1700000000000.json").write_text(json.dumps(record))


def _write_summary(directory, count):
    with open(directory / "summary.jsonl", "a") as f:
        for index in range(count):
            f.write(json.dumps({"task_id": f"img-{index}", "success": True}) + "\n")


def test_reports_no_data_for_empty_directory(tmp_path):
    report = compute_method_statistics(tmp_path / "missing")

    assert report.has_data is False
    assert report.message == NO_DATA_MESSAGE
    assert report.methods == {}
    assert report.to_dict()["message"] == NO_DATA_MESSAGE


def test_aggregates_attempts_across_sessions(tmp_path):
    _write_session(tmp_path, "img-1", [("viewport-render", True, 100)])
    _write_session(tmp_path, "img-2", [("viewport-render", True, 200)])
    _write_session(
        tmp_path,
        "img-3",
        [("viewport-render", False, 50), ("element-screenshot", True, 400)],
    )
    _write_summary(tmp_path, 3)

    report = compute_method_statistics(tmp_path)

    assert report.has_data is True
    assert report.total_sessions == 3
    assert report.sessions_scanned == 3
    viewport = report.methods["viewport-render"]
    assert viewport.attempts == 3
    assert viewport.successes == 2
    assert viewport.failures == 1
    assert viewport.avg_duration == pytest.approx(116.67, abs=0.01)
    assert report.methods["element-screenshot"].avg_duration == 400
    assert report.to_dict()["method_statistics"]["viewport-render"]["avg_duration"] == 116.67


def test_skips_malformed_records_and_summary_lines(tmp_path):
    _write_session(tmp_path, "img-1", [("viewport-render", True, 100)])
    (tmp_path / "img-2_1700000000001.json").write_text('{"task_id": "img-2", "stages": {')
    (tmp_path / "img-3_1700000000002.json").write_text(json.dumps(["not", "a", "session"]))
    (tmp_path / "img-4_1700000000003.json").write_text(
        json.dumps({"task_id": "img-4", "stages": {"canvas_extraction": {"methods": [{"rank": 1}]}}})
    )
    _write_summary(tmp_path, 2)
    with open(tmp_path / "summary.jsonl", "a") as f:
        f.write('{"task_id": "img-9"\n')

    report = StatisticsAggregator(SessionStore(tmp_path)).compute_method_statistics()

    assert report.skipped_records == 3
    assert report.skipped_summary_lines == 1
    assert report.total_sessions == 2
    assert report.methods["viewport-render"].attempts == 1


def test_sessions_without_attempts_count_as_scanned(tmp_path):
    (tmp_path / "img-1_1700000000000.json").write_text(
        json.dumps({"task_id": "img-1", "stages": {"navigation": {"navigation_attempt": 1}}})
    )

    report = compute_method_statistics(tmp_path)

    assert report.has_data is True
    assert report.sessions_scanned == 1
    assert report.total_sessions == 0
    assert report.methods == {}


def test_reads_records_written_by_tracker(tmp_path, fake_monitor, fake_clock):
    store = SessionStore(tmp_path)
    tracker = SessionTracker(store, memory_monitor=fake_monitor, clock=fake_clock)
    for index, outcome in enumerate([True, False]):
        task_id = f"img-{index}"
        tracker.start(task_id, "job-1", "https://example.com/a")
        tracker.begin_attempt(task_id, "viewport-render", 1)
        fake_clock.advance_ms(80)
        tracker.record_attempt_result(task_id, 1, outcome)
        tracker.finish(task_id, success=outcome)
        tracker.end(task_id)

    report = StatisticsAggregator(store).compute_method_statistics()

    stats = report.methods["viewport-render"]
    assert report.total_sessions == 2
    assert (stats.attempts, stats.successes, stats.failures) == (2, 1, 1)
    assert stats.avg_duration == 80
