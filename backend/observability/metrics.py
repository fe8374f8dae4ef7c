"""
Timing helpers for observability.

- Durations use monotonic time
- One metric = one METRIC_TIMER log event, never aggregated
- The `timed()` context manager is the only public API, so timers cannot leak
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Any, Iterator

from observability.logger import log_event


@contextmanager
def timed(
    name: str,
    *,
    connection_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> Iterator[dict[str, Any]]:
    """
    Measure the wall time of a block and emit it as a metric.

    Yields a mutable details dict so the block can attach outcome fields
    (e.g. "outcome": "ok") before the metric is written.

    Guarantees:
    - Metric is emitted exactly once, even if the block raises
    - Exceptions are never suppressed

    Usage:
        with timed("batch_submit_latency", connection_id=cid) as info:
            text = await transcriber.transcribe(...)
            info["chars"] = len(text)
    """
    info: dict[str, Any] = dict(details or {})
    start_ns = time.monotonic_ns()
    try:
        yield info
    finally:
        duration_ms = (time.monotonic_ns() - start_ns) // 1_000_000
        log_event({
            "event_type": "METRIC_TIMER",
            "metric": name,
            "value_ms": duration_ms,
            "connection_id": connection_id,
            "details": info,
        })
