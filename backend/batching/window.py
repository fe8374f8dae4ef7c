"""
Batch window accumulator.

Holds the fragments received between two drains, in arrival order, and
hands them out in one atomic swap.

Concurrency model:
- Owned by exactly one ConnectionCoordinator on one asyncio event loop.
- No method awaits, so append() and drain_and_reset() can never interleave:
  a fragment appended around a drain lands either in the drained batch or
  in the fresh window, never both and never neither.
- The in-flight submission guard lives in ConnectionState, not here.
"""

from __future__ import annotations

import time
from dataclasses import dataclass

from audio.frames import AudioFragment
from spec import BATCH_SEQUENCE_START


@dataclass(frozen=True)
class DrainedBatch:
    """
    The contents of one batch window, taken at drain time.

    sequence_number:
        Assigned at drain time so out-of-order completions can be reordered
        by the client.
    """
    fragments: tuple[AudioFragment, ...]
    sequence_number: int
    drained_at_ms: int

    @property
    def num_bytes(self) -> int:
        return sum(f.num_bytes for f in self.fragments)


class BatchWindow:
    """Ordered fragment buffer with monotonically numbered drains."""

    def __init__(self, *, first_sequence_number: int = BATCH_SEQUENCE_START) -> None:
        self._fragments: list[AudioFragment] = []
        self._next_sequence_number = first_sequence_number

    def append(self, fragment: AudioFragment) -> None:
        self._fragments.append(fragment)

    def drain_and_reset(self) -> DrainedBatch | None:
        """
        Take ownership of the current window and install an empty one.

        Returns None for an empty window; no sequence number is consumed,
        so empty drains never show up as gaps on the client.
        """
        if not self._fragments:
            return None

        taken, self._fragments = self._fragments, []
        seq = self._next_sequence_number
        self._next_sequence_number += 1

        return DrainedBatch(
            fragments=tuple(taken),
            sequence_number=seq,
            drained_at_ms=time.time_ns() // 1_000_000,
        )

    def discard(self) -> int:
        """Drop undrained contents. Returns how many fragments were dropped."""
        dropped = len(self._fragments)
        self._fragments = []
        return dropped

    # ------------------------------------------------------------------
    # Observability helpers (read-only)
    # ------------------------------------------------------------------

    @property
    def fragment_count(self) -> int:
        return len(self._fragments)

    @property
    def byte_count(self) -> int:
        return sum(f.num_bytes for f in self._fragments)

    @property
    def next_sequence_number(self) -> int:
        return self._next_sequence_number
