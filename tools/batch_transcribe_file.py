# tools/batch_transcribe_file.py
"""
Run one WAV file through the batch transcription path.

    PYTHONPATH=backend python tools/batch_transcribe_file.py hello.wav

The file must be PCM16 mono at 16kHz (what the browser client sends).
Provider and keys come from the same environment as the server.
"""
from __future__ import annotations

import argparse
import asyncio
import sys
import time
import wave

from dotenv import load_dotenv

from audio.frames import AudioFragment
from batching.pipeline import BatchSubmissionPipeline
from config import AppConfig
from server.app import build_batch_transcriber
from spec import AUDIO_CHANNELS, AUDIO_SAMPLE_RATE_HZ, AUDIO_SAMPLE_WIDTH_BYTES


def _read_pcm(path: str) -> bytes:
    with wave.open(path, "rb") as wf:
        if wf.getframerate() != AUDIO_SAMPLE_RATE_HZ:
            raise SystemExit(f"sample_rate {wf.getframerate()} != {AUDIO_SAMPLE_RATE_HZ}")
        if wf.getnchannels() != AUDIO_CHANNELS:
            raise SystemExit(f"channels {wf.getnchannels()} != {AUDIO_CHANNELS}")
        if wf.getsampwidth() != AUDIO_SAMPLE_WIDTH_BYTES:
            raise SystemExit(f"sample_width {wf.getsampwidth()} != {AUDIO_SAMPLE_WIDTH_BYTES}")
        return wf.readframes(wf.getnframes())


async def _run(path: str) -> int:
    config = AppConfig.load_from_env()
    pipeline = BatchSubmissionPipeline(
        transcriber=build_batch_transcriber(config),
        connection_id="tool",
    )

    pcm = _read_pcm(path)
    fragment = AudioFragment(pcm_bytes=pcm, arrival_index=0, ts_ms=int(time.time() * 1000))

    start = time.monotonic()
    result = await pipeline.submit([fragment], sequence_number=0)
    elapsed_ms = (time.monotonic() - start) * 1000

    print(f"provider={config.batch_provider} bytes={len(pcm)} elapsed_ms={elapsed_ms:.0f}")
    if result is None:
        print("(no transcription: silence, sentinel, or provider error)")
        return 1
    print(result.text)
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("wav_path")
    args = parser.parse_args()

    load_dotenv()
    sys.exit(asyncio.run(_run(args.wav_path)))


if __name__ == "__main__":
    main()
