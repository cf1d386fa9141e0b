"""
Unit tests for trace observers and the metrics counters
"""

import logging

import pytest

from core import metrics
from core.exceptions import NoFileToTransform, StorageError
from importer.tracing import Trace, log_trace, record_duration, record_error_metric, traced


def test_traced_block_records_error_and_duration():
    seen = []

    with pytest.raises(StorageError):
        with traced([seen.append], "Execute Importer Step", source_id=3):
            raise StorageError("down")

    trace = seen[0]
    assert trace.action == "Execute Importer Step"
    assert trace.context == {"source_id": 3}
    assert isinstance(trace.error, StorageError)
    assert trace.duration >= 0


def test_failing_observer_does_not_break_action():
    def broken(trace):
        raise RuntimeError("observer bug")

    seen = []
    with traced([broken, seen.append], "Create/Restart Import Step") as trace:
        trace.context["step_id"] = 5

    assert seen[0].context["step_id"] == 5


def test_error_metric_skips_no_file():
    record_error_metric(Trace(action="a", error=NoFileToTransform("/data")).finish())
    record_error_metric(Trace(action="a").finish())
    record_error_metric(Trace(action="a", error=StorageError("down")).finish())

    assert metrics.get_counts()["errors"] == {"a": 1}


def test_duration_metric_accumulates():
    record_duration(Trace(action="a", duration=0.5))
    record_duration(Trace(action="a", duration=0.25))

    assert metrics.get_counts()["durations"]["a"] == {"count": 2, "total_seconds": 0.75}


def test_log_trace_levels(caplog):
    caplog.set_level(logging.DEBUG, logger="importer.tracing")

    log_trace(Trace(action="a", error=NoFileToTransform("/data")).finish())
    log_trace(Trace(action="b", error=StorageError("down")).finish())

    errors = [r for r in caplog.records if r.levelno == logging.ERROR]
    assert len(errors) == 1
    assert errors[0].getMessage().startswith("b failed")


def test_bulk_insert_counters():
    metrics.record_bulk_insert(10)
    metrics.record_bulk_insert(5)

    counts = metrics.get_counts()
    assert counts["bulk_inserts"] == 2
    assert counts["rows_imported"] == 15
