"""
OpenAI batch transcriber (alternative to Gemini, BATCH_PROVIDER=openai).

Uses an audio-capable chat model: one user message carrying the instruction
and the WAV buffer as an input_audio part.
"""

from __future__ import annotations

import base64
from typing import Any

from openai import AsyncOpenAI, OpenAIError

from adapters.asr.base import BatchTranscriber, TranscriptionBackendError


class OpenAIBatchTranscriber(BatchTranscriber):
    """Chat-completions based batch transcriber."""

    def __init__(
        self,
        *,
        client: AsyncOpenAI | Any,
        model: str,
    ) -> None:
        self._client = client
        self._model = model

    async def transcribe(self, wav_bytes: bytes, instruction: str) -> str:
        audio_b64 = base64.b64encode(wav_bytes).decode("ascii")

        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                modalities=["text"],
                temperature=0,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": instruction},
                            {
                                "type": "input_audio",
                                "input_audio": {"data": audio_b64, "format": "wav"},
                            },
                        ],
                    }
                ],
            )
        except OpenAIError as e:
            raise TranscriptionBackendError(f"openai_request_failed: {e!r}") from e

        try:
            text = response.choices[0].message.content
        except (AttributeError, IndexError) as e:
            raise TranscriptionBackendError(f"openai_malformed_response: {e!r}") from e

        if not isinstance(text, str):
            raise TranscriptionBackendError("openai_response_without_text")
        return text


def build_openai_client(api_key: str) -> AsyncOpenAI:
    """Build the process-wide OpenAI client."""
    return AsyncOpenAI(api_key=api_key)
