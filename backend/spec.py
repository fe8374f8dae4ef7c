"""
SPEC-AS-CONSTANTS
-----------------
Single source of truth for the relay's behavioral constants.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Other modules MUST import from this file.
"""

from __future__ import annotations

from typing import Final

# =============================================================================
# Audio Format (PCM16LE mono @ 16kHz, produced by the browser)
# =============================================================================

AUDIO_SAMPLE_RATE_HZ: Final[int] = 16_000
AUDIO_CHANNELS: Final[int] = 1
AUDIO_SAMPLE_WIDTH_BYTES: Final[int] = 2  # PCM16 (signed 16-bit)
AUDIO_BITS_PER_SAMPLE: Final[int] = AUDIO_SAMPLE_WIDTH_BYTES * 8

# =============================================================================
# WAV container (canonical 44-byte RIFF header)
# =============================================================================

WAV_HEADER_BYTES: Final[int] = 44
WAV_FMT_CHUNK_BYTES: Final[int] = 16
WAV_FORMAT_PCM: Final[int] = 1

# =============================================================================
# Batch path
# =============================================================================

BATCH_INTERVAL_S: Final[float] = 3.0
BATCH_SEQUENCE_START: Final[int] = 0  # matches the client's chunkId ordering

BATCH_AUDIO_MIME_TYPE: Final[str] = "audio/wav"

# Marker the batch model is told to return for inaudible audio.
# Matched case-insensitively anywhere in the response text.
INAUDIBLE_SENTINEL: Final[str] = "unclear audio"

BATCH_INSTRUCTION: Final[str] = (
    "Transcribe this audio accurately. Only return the actual spoken words you "
    "can clearly hear. If the audio is unclear or contains only noise, respond "
    f"with '{INAUDIBLE_SENTINEL}'. Do not return random characters, repeated "
    "letters, or made-up words. Only return meaningful transcription."
)

# =============================================================================
# Streaming path (Gemini Live BidiGenerateContent)
# =============================================================================

LIVE_WS_URL: Final[str] = (
    "wss://generativelanguage.googleapis.com/ws/"
    "google.ai.generativelanguage.v1beta.GenerativeService.BidiGenerateContent"
)
LIVE_AUDIO_MIME_TYPE: Final[str] = f"audio/pcm;rate={AUDIO_SAMPLE_RATE_HZ}"
LIVE_RESPONSE_MODALITY: Final[str] = "TEXT"
LIVE_HANDSHAKE_TIMEOUT_S: Final[float] = 10.0
LIVE_MAX_MESSAGE_BYTES: Final[int] = 2**22

# =============================================================================
# Client protocol
# =============================================================================

STATUS_MESSAGE_ACTIVE: Final[str] = "Connected to Gemini Live"
STATUS_MESSAGE_BATCH_ONLY: Final[str] = "Live transcription unavailable; batch transcription only"
CLOSE_REASON_UNKNOWN: Final[str] = "session closed"

# =============================================================================
# Observability
# =============================================================================

AUDIO_PROGRESS_LOG_EVERY: Final[int] = 10
LOG_PAYLOAD_PREVIEW_CHARS: Final[int] = 100
