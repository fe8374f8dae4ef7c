"""
Gemini batch transcriber.

One generate_content call per batch: instruction text plus the WAV buffer as
an inline audio part. Returns the raw response text; interpretation
(sentinel, trimming) belongs to the batch pipeline.
"""

from __future__ import annotations

from typing import Any

from google import genai
from google.genai import types

from adapters.asr.base import BatchTranscriber, TranscriptionBackendError
from spec import BATCH_AUDIO_MIME_TYPE


class GeminiBatchTranscriber(BatchTranscriber):
    """
    Process-wide Gemini client wrapper.

    Stateless between calls, so one instance is shared by every connection.
    """

    def __init__(
        self,
        *,
        api_key: str | None = None,
        model: str,
        client: Any | None = None,  # Type: google.genai.Client
    ) -> None:
        if client is None:
            if not api_key:
                raise ValueError("GeminiBatchTranscriber needs api_key or client")
            client = genai.Client(api_key=api_key)
        self._client = client
        self._model = model

    async def transcribe(self, wav_bytes: bytes, instruction: str) -> str:
        contents = [
            types.Content(
                role="user",
                parts=[
                    types.Part.from_text(text=instruction),
                    types.Part.from_bytes(data=wav_bytes, mime_type=BATCH_AUDIO_MIME_TYPE),
                ],
            )
        ]

        try:
            response = await self._client.aio.models.generate_content(
                model=self._model,
                contents=contents,
            )
        except Exception as e:  # pylint: disable=broad-exception-caught
            raise TranscriptionBackendError(f"gemini_request_failed: {e!r}") from e

        return _extract_text(response)


def _extract_text(response: Any) -> str:
    """
    Pull the first candidate's text out of a generate_content response.

    A response without a text part (blocked, empty candidates) is malformed
    from the relay's point of view.
    """
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        raise TranscriptionBackendError("gemini_response_without_candidates")

    content = getattr(candidates[0], "content", None)
    parts = getattr(content, "parts", None) or []
    texts = [p.text for p in parts if getattr(p, "text", None)]
    if not texts:
        raise TranscriptionBackendError("gemini_response_without_text")

    return "".join(texts)
