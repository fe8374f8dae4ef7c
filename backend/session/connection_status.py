"""
Connection lifecycle phase for one client connection.

Tracked separately from the streaming session's own state: the connection
can be ACTIVE in batch-only mode while the streaming session is FAILED.
"""
from enum import Enum

class ConnectionPhase(Enum):
    """
    INIT -> ACTIVE -> CLOSING -> CLOSED

    INIT:    accepted; streaming session opening, window accumulating
    ACTIVE:  batch timer running
    CLOSING: client gone; timer stopped, window discarded, relay closing
    CLOSED:  all per-connection resources released
    """
    INIT = "INIT"
    ACTIVE = "ACTIVE"
    CLOSING = "CLOSING"
    CLOSED = "CLOSED"
