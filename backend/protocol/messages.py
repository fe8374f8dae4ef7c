# backend/protocol/messages.py
"""
Client <-> relay JSON message protocol.

One JSON object per websocket text frame.

Client -> relay:
    {"type": "audio", "audio": "<base64 PCM16LE mono 16kHz>"}
    {"type": "text",  "text": "<string>"}

Relay -> client:
    {"type": "status", "message": ...}
    {"type": "realtime_transcription", "text": ...}
    {"type": "corrected_transcription", "text": ..., "chunkId": n, "timestamp": ms}
    {"type": "error", "message": ...}
    {"type": "closed", "reason": ...}

Usage example:

    try:
        msg = parse_client_message(payload)
    except MalformedMessage as e:
        await send(error_message(str(e)))
    else:
        if isinstance(msg, AudioMessage):
            ...
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Union

from audio.pcm import PCMDecodeError, decode_pcm16_base64


# -------------------------
# Exceptions
# -------------------------

class ClientMessageError(Exception):
    """Base class for inbound client message errors."""


class MalformedMessage(ClientMessageError):
    """
    Raised when a text frame is not a JSON object.

    Reported back to the client as an error message; the connection stays open.
    """


class InvalidAudioPayload(ClientMessageError):
    """
    Raised when an audio message carries a missing or undecodable payload.

    The fragment is dropped and the client is told why.
    """


# -------------------------
# Inbound message types
# -------------------------

@dataclass(frozen=True)
class AudioMessage:
    pcm_bytes: bytes


@dataclass(frozen=True)
class TextMessage:
    text: str


@dataclass(frozen=True)
class UnknownMessage:
    """Valid JSON object with an unrecognized type; logged and ignored."""
    msg_type: Any


ClientMessage = Union[AudioMessage, TextMessage, UnknownMessage]


def parse_client_message(payload: str) -> ClientMessage:
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        raise MalformedMessage(f"invalid JSON: {e.msg}") from e

    if not isinstance(data, dict):
        raise MalformedMessage("message must be a JSON object")

    msg_type = data.get("type")

    if msg_type == "audio":
        audio = data.get("audio")
        if not isinstance(audio, str):
            raise InvalidAudioPayload("audio message without base64 'audio' field")
        try:
            return AudioMessage(pcm_bytes=decode_pcm16_base64(audio))
        except PCMDecodeError as e:
            raise InvalidAudioPayload(str(e)) from e

    if msg_type == "text":
        text = data.get("text")
        if not isinstance(text, str):
            raise MalformedMessage("text message without string 'text' field")
        return TextMessage(text=text)

    return UnknownMessage(msg_type=msg_type)


# -------------------------
# Outbound builders
# -------------------------

def status_message(message: str) -> dict[str, Any]:
    return {"type": "status", "message": message}


def realtime_transcription_message(text: str) -> dict[str, Any]:
    return {"type": "realtime_transcription", "text": text}


def corrected_transcription_message(text: str, *, chunk_id: int, timestamp_ms: int) -> dict[str, Any]:
    return {
        "type": "corrected_transcription",
        "text": text,
        "chunkId": chunk_id,
        "timestamp": timestamp_ms,
    }


def error_message(message: str) -> dict[str, Any]:
    return {"type": "error", "message": message}


def closed_message(reason: str) -> dict[str, Any]:
    return {"type": "closed", "reason": reason}
