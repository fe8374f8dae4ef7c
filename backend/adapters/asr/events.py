"""
Streaming relay events.

Events describe facts that have occurred on the external streaming session.
Data only, no behavior.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class RelayReady:
    """Handshake completed; the session accepts audio."""
    ts_ms: int


@dataclass(frozen=True)
class RelayTranscript:
    """
    One incremental input transcription from the session.

    turn_complete mirrors the provider's turn flag; text may be partial.
    """
    ts_ms: int
    text: str
    turn_complete: bool = False


@dataclass(frozen=True)
class RelayError:
    ts_ms: int
    message: str


@dataclass(frozen=True)
class RelayClosed:
    ts_ms: int
    reason: str


RelayEvent = Union[RelayReady, RelayTranscript, RelayError, RelayClosed]
