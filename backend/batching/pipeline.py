"""
Batch submission pipeline.

Turns one drained batch window into at most one corrected transcription:

    fragments -> concat -> WAV -> BatchTranscriber -> interpret -> BatchResult | None

Interpretation rules:
- Response containing the inaudible sentinel (any case) -> None
- Whitespace-only response -> None
- Otherwise -> BatchResult(text=trimmed response)

Failure policy:
- Provider/transport errors and malformed responses are logged and yield None.
- Nothing raised here may reach the ConnectionCoordinator; the next timer
  tick retries naturally with fresh audio.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Iterable

from adapters.asr.base import BatchTranscriber
from audio.frames import AudioFragment
from audio.pcm import pcm16_duration_s
from audio.wav import encode_wav
from observability.logger import log_event
from observability.metrics import timed
from spec import (
    AUDIO_BITS_PER_SAMPLE,
    AUDIO_CHANNELS,
    AUDIO_SAMPLE_RATE_HZ,
    BATCH_INSTRUCTION,
    INAUDIBLE_SENTINEL,
)


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


@dataclass(frozen=True)
class BatchResult:
    """One corrected transcription, tagged with its drain-time sequence number."""
    sequence_number: int
    text: str
    received_at_ms: int


def concat_fragments(fragments: Iterable[AudioFragment]) -> bytes:
    """
    Byte-exact concatenation in the given order.

    Fragments carry no framing, so this is correct as long as every
    fragment ends on a sample boundary (audio.pcm guarantees that).
    """
    return b"".join(f.pcm_bytes for f in fragments)


def interpret_response(text: str | None, *, sentinel: str = INAUDIBLE_SENTINEL) -> str | None:
    """Return the usable transcription, or None for silence/sentinel/empty."""
    if text is None:
        return None
    if sentinel.lower() in text.lower():
        return None
    trimmed = text.strip()
    return trimmed or None


class BatchSubmissionPipeline:
    """
    Stateless per call; one instance per connection so log lines carry the
    connection id. The transcriber is shared process-wide.
    """

    def __init__(
        self,
        *,
        transcriber: BatchTranscriber,
        connection_id: str | None = None,
        instruction: str = BATCH_INSTRUCTION,
        sample_rate_hz: int = AUDIO_SAMPLE_RATE_HZ,
    ) -> None:
        self._transcriber = transcriber
        self._connection_id = connection_id
        self._instruction = instruction
        self._sample_rate_hz = sample_rate_hz

    async def submit(
        self,
        fragments: Iterable[AudioFragment],
        sequence_number: int,
    ) -> BatchResult | None:
        pcm = concat_fragments(fragments)
        wav = encode_wav(
            pcm,
            self._sample_rate_hz,
            AUDIO_CHANNELS,
            AUDIO_BITS_PER_SAMPLE,
        )

        log_event({
            "event_type": "BATCH_SUBMITTING",
            "connection_id": self._connection_id,
            "sequence_number": sequence_number,
            "pcm_bytes": len(pcm),
            "wav_bytes": len(wav),
            "audio_s": round(pcm16_duration_s(len(pcm), sample_rate_hz=self._sample_rate_hz), 3),
        })

        with timed(
            "batch_submit_latency",
            connection_id=self._connection_id,
            details={"sequence_number": sequence_number},
        ) as info:
            try:
                raw_text = await self._transcriber.transcribe(wav, self._instruction)
            # TranscriptionBackendError is the expected failure; anything else
            # from a provider SDK is treated the same way.
            except Exception as e:  # pylint: disable=broad-exception-caught
                info["outcome"] = "error"
                self._log_failure(sequence_number, e)
                return None
            info["outcome"] = "ok"

        text = interpret_response(raw_text)
        if text is None:
            log_event({
                "event_type": "BATCH_SUPPRESSED",
                "connection_id": self._connection_id,
                "sequence_number": sequence_number,
                "reason": "empty" if not (raw_text or "").strip() else "inaudible_sentinel",
            })
            return None

        return BatchResult(
            sequence_number=sequence_number,
            text=text,
            received_at_ms=_now_ms(),
        )

    def _log_failure(self, sequence_number: int, exc: Exception) -> None:
        log_event({
            "level": "ERROR",
            "event_type": "BATCH_SUBMIT_FAILED",
            "connection_id": self._connection_id,
            "sequence_number": sequence_number,
            "exception": type(exc).__name__,
            "message": str(exc),
        })
