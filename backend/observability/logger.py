"""
JSONL event logger.

- Write one JSON object per line
- Output to stdout
- No buffering, no batching
- No side effects beyond logging

Events are plain dicts with an "event_type" key. An optional "level" key
(DEBUG/INFO/WARNING/ERROR, default INFO) is filtered against the configured
threshold. configure_logging() may switch to a human-readable line format
for local development.
"""

from __future__ import annotations

import json
import sys
import time
from typing import Any, Mapping, Callable


_LEVELS: dict[str, int] = {
    "DEBUG": 10,
    "INFO": 20,
    "WARNING": 30,
    "ERROR": 40,
}

_threshold: int = _LEVELS["INFO"]
_json_lines: bool = True


# ------------------------------------------------------------------
# Explicit output sink (patchable in tests)
# ------------------------------------------------------------------

def _stdout_print(line: str) -> None:
    sys.stdout.write(line + "\n")
    sys.stdout.flush()

_print: Callable[[str], None] = _stdout_print


def configure_logging(*, level: str = "INFO", json_lines: bool = True) -> None:
    """
    Set the process-wide level threshold and output format.

    Unknown level names fall back to INFO.
    """
    global _threshold, _json_lines  # pylint: disable=global-statement
    _threshold = _LEVELS.get(level.upper(), _LEVELS["INFO"])
    _json_lines = json_lines


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def _format_plain(event: Mapping[str, Any]) -> str:
    head = f"{event.get('level', 'INFO'):<7} {event.get('event_type', '?')}"
    rest = " ".join(
        f"{k}={v!r}" for k, v in event.items()
        if k not in ("level", "event_type", "ts_ms")
    )
    return f"{head} {rest}".rstrip()


def log_event(event: Mapping[str, Any]) -> None:
    """
    Write a single log event.

    The caller supplies event_type and any context (connection_id, etc.).

    This function:
    - Fills in ts_ms if missing
    - Drops events below the configured level
    - Writes exactly one line and flushes
    - Never raises
    """
    level = str(event.get("level", "INFO")).upper()
    if _LEVELS.get(level, _LEVELS["INFO"]) < _threshold:
        return

    payload: dict[str, Any] = dict(event)
    payload.setdefault("ts_ms", _now_ms())

    if not _json_lines:
        _print(_format_plain(payload))
        return

    try:
        line = json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        # Last-resort fallback, logging must never crash the relay
        fallback: dict[str, Any] = {
            "ts_ms": payload.get("ts_ms"),
            "event_type": "LOGGER_SERIALIZATION_ERROR",
            "error": str(e),
            "original_event_repr": repr(event),
        }
        line = json.dumps(fallback, ensure_ascii=False, separators=(",", ":"))

    _print(line)
