"""
Trace events emitted by the importer engine and the observers that consume them.

An observer is any callable taking a Trace. Observers are passed to the
engine at construction; a failing observer is logged and never breaks
the traced action.
"""

import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, Optional, Sequence

from core import metrics
from core.exceptions import NoFileToTransform, UsageImportError
import logging

logger = logging.getLogger(__name__)


@dataclass
class Trace:
    """One traced action"""
    action: str
    context: Dict[str, Any] = field(default_factory=dict)
    start: float = field(default_factory=time.perf_counter)
    duration: Optional[float] = None
    error: Optional[BaseException] = None

    def finish(self) -> "Trace":
        self.duration = time.perf_counter() - self.start
        return self


Observer = Callable[[Trace], None]


def emit(observers: Sequence[Observer], trace: Trace) -> None:
    """Hand a finished trace to every observer"""
    trace.finish()
    for observer in observers:
        try:
            observer(trace)
        except Exception:
            logger.exception(f"Trace observer {observer!r} failed for action '{trace.action}'")


@contextmanager
def traced(observers: Sequence[Observer], action: str, **context) -> Iterator[Trace]:
    """
    Trace the enclosed block.

    The raised exception, if any, is stored on the trace and re-raised.
    The context dict may be extended inside the block.
    """
    trace = Trace(action=action, context=dict(context))
    try:
        yield trace
    except Exception as e:
        trace.error = e
        raise
    finally:
        emit(observers, trace)


def _is_failure(trace: Trace) -> bool:
    return trace.error is not None and not isinstance(trace.error, NoFileToTransform)


def log_trace(trace: Trace) -> None:
    """Log failed actions at error level, successful ones at debug level"""
    context_str = ", ".join(f"{k}={v}" for k, v in trace.context.items())

    if _is_failure(trace):
        error_context = trace.error.to_dict() if isinstance(trace.error, UsageImportError) else {}
        logger.error(
            f"{trace.action} failed after {trace.duration:.3f}s [{context_str}]: {trace.error}",
            extra={"error_context": error_context}
        )
    else:
        logger.debug(f"{trace.action} completed in {trace.duration:.3f}s [{context_str}]")


def record_error_metric(trace: Trace) -> None:
    if _is_failure(trace):
        metrics.increment_errors(trace.action)


def record_duration(trace: Trace) -> None:
    metrics.observe_duration(trace.action, trace.duration or 0.0)


DEFAULT_OBSERVERS = (log_trace, record_error_metric, record_duration)
