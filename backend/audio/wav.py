# backend/audio/wav.py
"""
WAV container encoder.

Wraps raw PCM in the canonical 44-byte RIFF/WAVE header so the result is a
self-contained file any standard decoder can read:

    offset  size  field
    0       4     "RIFF"
    4       4     chunk size = 36 + data_len        (u32 LE)
    8       4     "WAVE"
    12      4     "fmt "
    16      4     fmt chunk size = 16               (u32 LE)
    20      2     audio format = 1 (PCM)            (u16 LE)
    22      2     channels                          (u16 LE)
    24      4     sample rate                       (u32 LE)
    28      4     byte rate                         (u32 LE)
    32      2     block align                       (u16 LE)
    34      2     bits per sample                   (u16 LE)
    36      4     "data"
    40      4     data_len                          (u32 LE)
    44      ...   PCM bytes

Pure function. No state, no I/O.
"""

from __future__ import annotations

import struct

from spec import (
    WAV_FMT_CHUNK_BYTES,
    WAV_FORMAT_PCM,
    WAV_HEADER_BYTES,
)

_HEADER = struct.Struct("<4sI4s4sIHHIIHH4sI")


def encode_wav(
    pcm_bytes: bytes,
    sample_rate: int,
    channels: int = 1,
    bits_per_sample: int = 16,
) -> bytes:
    """
    Encode raw little-endian PCM into a WAV byte buffer.

    Empty input yields a valid header-only container (data_len = 0).
    """
    bytes_per_sample = bits_per_sample // 8
    block_align = channels * bytes_per_sample
    byte_rate = sample_rate * block_align
    data_len = len(pcm_bytes)

    header = _HEADER.pack(
        b"RIFF",
        WAV_HEADER_BYTES - 8 + data_len,
        b"WAVE",
        b"fmt ",
        WAV_FMT_CHUNK_BYTES,
        WAV_FORMAT_PCM,
        channels,
        sample_rate,
        byte_rate,
        block_align,
        bits_per_sample,
        b"data",
        data_len,
    )
    assert len(header) == WAV_HEADER_BYTES
    return header + pcm_bytes
