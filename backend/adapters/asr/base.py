"""
Transcription adapter contracts.

This module defines the *interfaces only*. No batching, timers, or
connection lifecycle decisions live here.

Two provider-facing roles:
- BatchTranscriber: one-shot request (WAV bytes + instruction) -> text.
- StreamingRelay: persistent session; audio in, incremental transcript
  events out on an asyncio.Queue channel.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from enum import Enum

from adapters.asr.events import RelayEvent


class TranscriptionBackendError(RuntimeError):
    """Raised by a batch transcriber on provider errors or malformed responses."""


class StreamingRelayError(RuntimeError):
    """Raised when a streaming session handshake does not complete."""


class StreamingSessionState(str, Enum):
    """
    Lifecycle of the external streaming session.

    CONNECTING -> OPEN on handshake completion
    OPEN -> CLOSED on explicit close or graceful provider close
    any -> FAILED on handshake or transport error (terminal, no retry)
    """
    CONNECTING = "CONNECTING"
    OPEN = "OPEN"
    CLOSED = "CLOSED"
    FAILED = "FAILED"


class BatchTranscriber(ABC):
    """
    Abstract interface for a non-streaming transcription provider.

    Implementations are responsible for:
    - Building the provider request envelope (instruction + inline audio)
    - Extracting the response text

    Non-responsibilities:
    - No sentinel filtering or trimming (pipeline owns interpretation)
    - No retries
    - No knowledge of connections or sequence numbers
    """

    @abstractmethod
    async def transcribe(self, wav_bytes: bytes, instruction: str) -> str:
        """
        Transcribe one self-contained WAV buffer.

        Raises:
            TranscriptionBackendError on any provider or response error.
        """
        raise NotImplementedError


class StreamingRelay(ABC):
    """
    Abstract interface for a streaming transcription session.

    Events (RelayReady, RelayTranscript, RelayError, RelayClosed) are put on
    `events` in the order they happen. The consumer reads them one at a time;
    the relay never reorders or merges them.

    Contract:
    - open() performs the handshake; failures surface as RelayError on the
      channel (and FAILED state), not as exceptions.
    - send()/send_text() while not OPEN are silent no-ops.
    - close() is idempotent.
    """

    events: asyncio.Queue[RelayEvent]

    @property
    @abstractmethod
    def state(self) -> StreamingSessionState:
        raise NotImplementedError

    @abstractmethod
    async def open(self) -> None:
        raise NotImplementedError

    @abstractmethod
    async def send(self, pcm_bytes: bytes) -> None:
        """Forward one PCM16LE fragment to the session."""
        raise NotImplementedError

    @abstractmethod
    async def send_text(self, text: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def close(self) -> None:
        raise NotImplementedError
