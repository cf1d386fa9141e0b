"""
In-memory metrics state container for lightweight observability.

Tracks the importer's vital signs:
- Error counts per traced action
- Action durations (count and total seconds) per traced action
- Bulk insert statements and imported rows
- Uptime

Thread-safe for single-process deployments.
"""

import threading
import time
from typing import Dict, TypedDict


class ActionDuration(TypedDict):
    """Aggregated duration for one action."""

    count: int
    total_seconds: float


class MetricCounts(TypedDict):
    """Type for metric counts dictionary."""

    errors: Dict[str, int]
    durations: Dict[str, ActionDuration]
    bulk_inserts: int
    rows_imported: int
    uptime_seconds: int


_START_TIME: float = time.time()
_errors: Dict[str, int] = {}
_durations: Dict[str, ActionDuration] = {}
_bulk_inserts: int = 0
_rows_imported: int = 0
_lock = threading.Lock()


def increment_errors(action: str) -> None:
    """Increment the error count for an action."""
    with _lock:
        _errors[action] = _errors.get(action, 0) + 1


def observe_duration(action: str, seconds: float) -> None:
    """Add one duration sample for an action."""
    with _lock:
        current = _durations.setdefault(action, ActionDuration(count=0, total_seconds=0.0))
        current["count"] += 1
        current["total_seconds"] += seconds


def record_bulk_insert(rows: int) -> None:
    """Count one bulk insert statement and its rows."""
    global _bulk_inserts, _rows_imported
    with _lock:
        _bulk_inserts += 1
        _rows_imported += rows


def get_uptime() -> int:
    """Return uptime in seconds since module import."""
    return int(time.time() - _START_TIME)


def get_counts() -> MetricCounts:
    """Return a copy of the current counters."""
    with _lock:
        return MetricCounts(
            errors=dict(_errors),
            durations={k: ActionDuration(**v) for k, v in _durations.items()},
            bulk_inserts=_bulk_inserts,
            rows_imported=_rows_imported,
            uptime_seconds=get_uptime(),
        )


def reset_for_testing() -> None:
    """Reset all counters - only for use in tests."""
    global _bulk_inserts, _rows_imported, _START_TIME
    with _lock:
        _errors.clear()
        _durations.clear()
        _bulk_inserts = 0
        _rows_imported = 0
        _START_TIME = time.time()
