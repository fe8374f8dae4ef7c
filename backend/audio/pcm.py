"""PCM payload utilities."""
from __future__ import annotations

import base64
import binascii

from spec import AUDIO_SAMPLE_RATE_HZ, AUDIO_SAMPLE_WIDTH_BYTES


class PCMDecodeError(ValueError):
    """Raised when a base64 audio payload cannot be decoded."""


def decode_pcm16_base64(payload: str) -> bytes:
    """
    Decode a base64 PCM16LE payload to raw bytes.

    A trailing odd byte is a truncated sample and is dropped, so every
    returned buffer ends on a sample boundary and can be concatenated
    with its neighbours byte-for-byte.
    """
    try:
        pcm_bytes = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise PCMDecodeError(f"invalid base64 audio: {e}") from e

    if len(pcm_bytes) % AUDIO_SAMPLE_WIDTH_BYTES != 0:
        pcm_bytes = pcm_bytes[: len(pcm_bytes) - 1]
    return pcm_bytes


def pcm16_duration_s(num_bytes: int, *, sample_rate_hz: int = AUDIO_SAMPLE_RATE_HZ) -> float:
    """Duration of a mono PCM16 buffer in seconds."""
    return num_bytes / float(AUDIO_SAMPLE_WIDTH_BYTES * sample_rate_hz)
