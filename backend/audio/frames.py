"""
Audio fragment primitives.

Pure data containers only.
No behavior, no buffering, no timing logic.
"""

from __future__ import annotations
from dataclasses import dataclass


@dataclass(frozen=True)
class AudioFragment:
    """
    One inbound chunk of client audio, before any batching.

    pcm_bytes:
        Raw PCM16LE mono samples at spec.AUDIO_SAMPLE_RATE_HZ.
        Length is always a whole number of samples.

    arrival_index:
        Per-connection arrival counter (0-based). Debugging/observability only;
        ordering is carried by the order fragments are appended.

    ts_ms:
        Wall-clock timestamp (milliseconds) when the fragment was received.
    """
    pcm_bytes: bytes
    arrival_index: int
    ts_ms: int

    @property
    def num_bytes(self) -> int:
        return len(self.pcm_bytes)
