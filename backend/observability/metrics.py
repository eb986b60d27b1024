"""
Timing helpers for the pairing pipeline.

- Durations use monotonic time; ts_ms uses wall clock
- One metric = one METRIC_TIMER log record, no aggregation
- Stopwatch covers spans that begin and end in different callbacks
  (QR shown -> connected); timed() covers spans inside one coroutine
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Any, Iterator

from observability.logger import log_event


def _emit(name: str, duration_ms: int, session_id: str | None, details: dict[str, Any] | None) -> None:
    log_event({
        "event_type": "METRIC_TIMER",
        "metric": name,
        "value_ms": duration_ms,
        "session_id": session_id,
        "details": details or {},
    })


class Stopwatch:
    """
    Named span that can be restarted and stopped at most once per start.

    stop() on a stopwatch that is not running is a no-op and returns None.
    """

    def __init__(self, name: str, *, session_id: str | None = None) -> None:
        self.name = name
        self._session_id = session_id
        self._start_ns: int | None = None

    @property
    def running(self) -> bool:
        return self._start_ns is not None

    def start(self) -> None:
        self._start_ns = time.monotonic_ns()

    def reset(self) -> None:
        self._start_ns = None

    def stop(self, details: dict[str, Any] | None = None) -> int | None:
        if self._start_ns is None:
            return None
        duration_ms = (time.monotonic_ns() - self._start_ns) // 1_000_000
        self._start_ns = None
        _emit(self.name, duration_ms, self._session_id, details)
        return duration_ms


@contextmanager
def timed(
    name: str,
    *,
    session_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> Iterator[None]:
    """
    Measure the enclosed block; the metric is emitted exactly once,
    even if the block raises.
    """
    start_ns = time.monotonic_ns()
    try:
        yield
    finally:
        _emit(name, (time.monotonic_ns() - start_ns) // 1_000_000, session_id, details)
