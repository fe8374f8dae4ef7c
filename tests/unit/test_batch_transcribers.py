# pylint: disable=missing-module-docstring,missing-function-docstring

from types import SimpleNamespace
from typing import Any

import httpx
import openai
import pytest

from adapters.asr.base import TranscriptionBackendError
from adapters.asr.gemini_batch import GeminiBatchTranscriber
from adapters.asr.openai_batch import OpenAIBatchTranscriber


WAV = b"RIFF" + b"\x00" * 40 + b"\x01\x00"


# ---------------------------------------------------------------------
# Gemini
# ---------------------------------------------------------------------

class FakeGeminiModels:
    def __init__(self, response: Any = None, error: Exception | None = None) -> None:
        self.response = response
        self.error = error
        self.calls: list[dict[str, Any]] = []

    async def generate_content(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.response


def gemini_client(models: FakeGeminiModels) -> Any:
    return SimpleNamespace(aio=SimpleNamespace(models=models))


def gemini_response(*texts: str) -> Any:
    parts = [SimpleNamespace(text=t) for t in texts]
    return SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=parts))])


@pytest.mark.asyncio
async def test_gemini_sends_instruction_then_inline_wav():
    models = FakeGeminiModels(response=gemini_response("hello ", "world"))
    transcriber = GeminiBatchTranscriber(model="gemini-test", client=gemini_client(models))

    text = await transcriber.transcribe(WAV, "transcribe this")

    assert text == "hello world"
    call = models.calls[0]
    assert call["model"] == "gemini-test"
    parts = call["contents"][0].parts
    assert parts[0].text == "transcribe this"
    assert parts[1].inline_data.mime_type == "audio/wav"
    assert parts[1].inline_data.data == WAV


@pytest.mark.asyncio
async def test_gemini_request_error_is_wrapped():
    models = FakeGeminiModels(error=RuntimeError("429 resource exhausted"))
    transcriber = GeminiBatchTranscriber(model="m", client=gemini_client(models))

    with pytest.raises(TranscriptionBackendError, match="gemini_request_failed"):
        await transcriber.transcribe(WAV, "x")


@pytest.mark.asyncio
@pytest.mark.parametrize("response", [
    SimpleNamespace(candidates=[]),
    SimpleNamespace(candidates=None),
    SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=[]))]),
])
async def test_gemini_response_without_text_is_an_error(response):
    transcriber = GeminiBatchTranscriber(
        model="m", client=gemini_client(FakeGeminiModels(response=response))
    )

    with pytest.raises(TranscriptionBackendError):
        await transcriber.transcribe(WAV, "x")


def test_gemini_requires_key_or_client():
    with pytest.raises(ValueError):
        GeminiBatchTranscriber(model="m")


# ---------------------------------------------------------------------
# OpenAI
# ---------------------------------------------------------------------

class FakeCompletions:
    def __init__(self, content: Any = "hi", error: Exception | None = None) -> None:
        self.content = content
        self.error = error
        self.calls: list[dict[str, Any]] = []

    async def create(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def openai_client(completions: FakeCompletions) -> Any:
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


@pytest.mark.asyncio
async def test_openai_sends_wav_as_input_audio():
    completions = FakeCompletions(content="good morning")
    transcriber = OpenAIBatchTranscriber(client=openai_client(completions), model="gpt-audio")

    assert await transcriber.transcribe(WAV, "transcribe") == "good morning"

    call = completions.calls[0]
    assert call["model"] == "gpt-audio"
    content = call["messages"][0]["content"]
    assert content[0] == {"type": "text", "text": "transcribe"}
    assert content[1]["input_audio"]["format"] == "wav"


@pytest.mark.asyncio
async def test_openai_api_error_is_wrapped():
    error = openai.APIConnectionError(request=httpx.Request("POST", "https://api.openai.com/v1"))
    transcriber = OpenAIBatchTranscriber(
        client=openai_client(FakeCompletions(error=error)), model="m"
    )

    with pytest.raises(TranscriptionBackendError, match="openai_request_failed"):
        await transcriber.transcribe(WAV, "x")


@pytest.mark.asyncio
async def test_openai_null_content_is_an_error():
    transcriber = OpenAIBatchTranscriber(
        client=openai_client(FakeCompletions(content=None)), model="m"
    )

    with pytest.raises(TranscriptionBackendError, match="without_text"):
        await transcriber.transcribe(WAV, "x")
