"""
Per-connection state container.

- Owned and mutated by exactly one ConnectionCoordinator
- Passed by reference; never global, since connections coexist
- NOT a state machine, contains no relay logic
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from batching.window import BatchWindow
from session.connection_status import ConnectionPhase

if TYPE_CHECKING:
    from adapters.asr.base import StreamingRelay


@dataclass
class ConnectionState:
    """Mutable runtime container for a single client connection."""

    # ------------------------------------------------------------------
    # Identity / lifecycle
    # ------------------------------------------------------------------

    connection_id: str
    created_at: float = field(default_factory=time.time)
    phase: ConnectionPhase = ConnectionPhase.INIT

    # ------------------------------------------------------------------
    # Batch path
    # ------------------------------------------------------------------

    window: BatchWindow = field(default_factory=BatchWindow)
    batch_timer: asyncio.Task[None] | None = None
    batch_in_flight: bool = False
    batch_task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Streaming path
    # ------------------------------------------------------------------

    relay: StreamingRelay | None = None
    relay_open_task: asyncio.Task[None] | None = None
    relay_pump: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Counters (observability only)
    # ------------------------------------------------------------------

    fragments_received: int = 0
    batches_submitted: int = 0
    batches_deferred: int = 0

    @property
    def is_open(self) -> bool:
        return self.phase in (ConnectionPhase.INIT, ConnectionPhase.ACTIVE)

    def log_context(self) -> dict[str, Any]:
        """Standard logging context for this connection."""
        return {
            "connection_id": self.connection_id,
            "phase": self.phase.value,
        }
