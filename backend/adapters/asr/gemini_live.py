"""
Gemini Live streaming relay (BidiGenerateContent over a websocket).

Core model:
- One relay == one external streaming session == one client connection.
- Audio fragments are passed through immediately, unbuffered.
- Every input transcription the session produces is put on `events` as it
  arrives. The session already serializes its own events, so there is no
  reordering or merging here.

Lifecycle:
    CONNECTING --setupComplete--> OPEN --close frame / close()--> CLOSED
    any --handshake or transport error--> FAILED

No automatic reconnect: FAILED and CLOSED are terminal for this relay.

Design constraints:
- Relay must not know about the client websocket or the batch path.
- Failures are reported as RelayError events, never raised to the caller.
"""

from __future__ import annotations

import asyncio
import base64
import json
import time
import urllib.parse
from typing import Any

from websockets.asyncio.client import ClientConnection, connect as ws_connect
from websockets.exceptions import ConnectionClosed, ConnectionClosedError

from adapters.asr.base import (
    StreamingRelay,
    StreamingRelayError,
    StreamingSessionState,
)
from adapters.asr.events import (
    RelayClosed,
    RelayError,
    RelayEvent,
    RelayReady,
    RelayTranscript,
)
from observability.logger import log_event
from observability.metrics import timed
from spec import (
    CLOSE_REASON_UNKNOWN,
    LIVE_AUDIO_MIME_TYPE,
    LIVE_HANDSHAKE_TIMEOUT_S,
    LIVE_MAX_MESSAGE_BYTES,
    LIVE_RESPONSE_MODALITY,
    LIVE_WS_URL,
)


def _now_ms() -> int:
    return int(time.time() * 1000)


def _decode_frame(raw: str | bytes) -> dict[str, Any]:
    """Server frames are JSON, delivered as either text or binary frames."""
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8")
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError(f"expected JSON object, got {type(data).__name__}")
    return data


class GeminiLiveRelay(StreamingRelay):
    """
    Streaming relay backed by a Gemini Live session.

    Public interface:
    - open(): connect + setup handshake; emits RelayReady or RelayError
    - send(pcm_bytes): forward audio (no-op unless OPEN)
    - send_text(text): forward text input (no-op unless OPEN)
    - close(): idempotent; emits RelayClosed
    """

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        connection_id: str | None = None,
        url: str = LIVE_WS_URL,
        handshake_timeout_s: float = LIVE_HANDSHAKE_TIMEOUT_S,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._connection_id = connection_id
        self._url = url
        self._handshake_timeout_s = handshake_timeout_s

        self.events: asyncio.Queue[RelayEvent] = asyncio.Queue()

        self._state = StreamingSessionState.CONNECTING
        self._ws: ClientConnection | None = None
        self._recv_task: asyncio.Task[None] | None = None

    @property
    def state(self) -> StreamingSessionState:
        return self._state

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def open(self) -> None:
        if self._state is not StreamingSessionState.CONNECTING or self._ws is not None:
            return

        log_event({
            "event_type": "LIVE_SESSION_CONNECTING",
            "connection_id": self._connection_id,
            "model": self._model,
        })

        ws: ClientConnection | None = None
        try:
            with timed("live_session_open_latency", connection_id=self._connection_id) as info:
                ws = await ws_connect(
                    self._build_url(),
                    max_size=LIVE_MAX_MESSAGE_BYTES,
                    open_timeout=self._handshake_timeout_s,
                )
                await ws.send(json.dumps(self._setup_message()))
                reply = await asyncio.wait_for(ws.recv(), timeout=self._handshake_timeout_s)
                data = _decode_frame(reply)
                if "setupComplete" not in data:
                    raise StreamingRelayError(f"unexpected handshake reply: {sorted(data)}")
                info["outcome"] = "ok"
        except Exception as e:  # pylint: disable=broad-exception-caught
            if ws is not None:
                await self._close_quietly(ws)
            if self._state is StreamingSessionState.CLOSED:
                # close() raced the handshake; nothing left to report
                return
            self._state = StreamingSessionState.FAILED
            log_event({
                "level": "ERROR",
                "event_type": "LIVE_SESSION_OPEN_FAILED",
                "connection_id": self._connection_id,
                "exception": type(e).__name__,
                "message": str(e),
            })
            self._put(RelayError(ts_ms=_now_ms(), message=f"Failed to connect to Gemini Live: {e}"))
            return

        if self._state is StreamingSessionState.CLOSED:
            await self._close_quietly(ws)
            return

        self._ws = ws
        self._state = StreamingSessionState.OPEN
        log_event({
            "event_type": "LIVE_SESSION_OPEN",
            "connection_id": self._connection_id,
        })
        self._put(RelayReady(ts_ms=_now_ms()))
        self._recv_task = asyncio.create_task(self._recv_loop(ws))

    async def close(self) -> None:
        if self._state in (StreamingSessionState.CLOSED, StreamingSessionState.FAILED):
            return

        self._state = StreamingSessionState.CLOSED
        ws = self._ws
        self._ws = None

        rt = self._recv_task
        self._recv_task = None
        if rt is not None and not rt.done():
            rt.cancel()

        if ws is not None:
            await self._close_quietly(ws)

        log_event({
            "event_type": "LIVE_SESSION_CLOSED",
            "connection_id": self._connection_id,
            "reason": "client_closed",
        })
        self._put(RelayClosed(ts_ms=_now_ms(), reason="client closed"))

    # -------------------------------------------------------------------------
    # Outbound
    # -------------------------------------------------------------------------

    async def send(self, pcm_bytes: bytes) -> None:
        """
        Forward one PCM16LE fragment.

        Dropped silently while not OPEN: audio may arrive slightly before the
        handshake completes or after the session has ended.
        """
        await self._send_realtime_input({
            "audio": {
                "data": base64.b64encode(pcm_bytes).decode("ascii"),
                "mimeType": LIVE_AUDIO_MIME_TYPE,
            }
        })

    async def send_text(self, text: str) -> None:
        await self._send_realtime_input({"text": text})

    async def _send_realtime_input(self, realtime_input: dict[str, Any]) -> None:
        ws = self._ws
        if self._state is not StreamingSessionState.OPEN or ws is None:
            return

        try:
            await ws.send(json.dumps({"realtimeInput": realtime_input}))
        except ConnectionClosed:
            # The receive loop observes the same close and reports it.
            return
        except Exception as e:  # pylint: disable=broad-exception-caught
            log_event({
                "level": "WARNING",
                "event_type": "LIVE_SEND_FAILED",
                "connection_id": self._connection_id,
                "exception": type(e).__name__,
                "message": str(e),
            })

    # -------------------------------------------------------------------------
    # Inbound
    # -------------------------------------------------------------------------

    async def _recv_loop(self, ws: ClientConnection) -> None:
        try:
            async for raw in ws:
                try:
                    data = _decode_frame(raw)
                except ValueError as e:
                    log_event({
                        "level": "WARNING",
                        "event_type": "LIVE_MESSAGE_UNPARSEABLE",
                        "connection_id": self._connection_id,
                        "error": str(e),
                    })
                    continue
                self._handle_message(data)
        except ConnectionClosedError as e:
            if e.rcvd is not None:
                # Provider sent a close frame (e.g. quota, invalid argument).
                self._on_remote_close(e.rcvd.reason)
            else:
                self._on_transport_error(e)
        except Exception as e:  # pylint: disable=broad-exception-caught
            self._on_transport_error(e)
        else:
            self._on_remote_close(ws.close_reason)

    def _handle_message(self, data: dict[str, Any]) -> None:
        server_content = data.get("serverContent")
        if isinstance(server_content, dict):
            transcription = server_content.get("inputTranscription") or {}
            text = transcription.get("text") if isinstance(transcription, dict) else None
            if isinstance(text, str) and text:
                self._put(
                    RelayTranscript(
                        ts_ms=_now_ms(),
                        text=text,
                        turn_complete=bool(server_content.get("turnComplete", False)),
                    )
                )
                return

            log_event({
                "level": "DEBUG",
                "event_type": "LIVE_CONTENT_WITHOUT_TRANSCRIPTION",
                "connection_id": self._connection_id,
                "keys": sorted(server_content),
            })
            return

        if "goAway" in data:
            log_event({
                "level": "WARNING",
                "event_type": "LIVE_GO_AWAY",
                "connection_id": self._connection_id,
                "time_left": (data.get("goAway") or {}).get("timeLeft"),
            })
            return

        log_event({
            "level": "DEBUG",
            "event_type": "LIVE_MESSAGE_IGNORED",
            "connection_id": self._connection_id,
            "keys": sorted(data),
        })

    def _on_remote_close(self, reason: str | None) -> None:
        if self._state is not StreamingSessionState.OPEN:
            return
        self._state = StreamingSessionState.CLOSED
        self._ws = None
        log_event({
            "event_type": "LIVE_SESSION_CLOSED",
            "connection_id": self._connection_id,
            "reason": reason,
        })
        self._put(RelayClosed(ts_ms=_now_ms(), reason=reason or CLOSE_REASON_UNKNOWN))

    def _on_transport_error(self, exc: BaseException) -> None:
        if self._state is not StreamingSessionState.OPEN:
            return
        self._state = StreamingSessionState.FAILED
        self._ws = None
        log_event({
            "level": "ERROR",
            "event_type": "LIVE_SESSION_FAILED",
            "connection_id": self._connection_id,
            "exception": type(exc).__name__,
            "message": str(exc),
        })
        self._put(RelayError(ts_ms=_now_ms(), message=f"Gemini Live connection error: {exc}"))

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _put(self, event: RelayEvent) -> None:
        self.events.put_nowait(event)

    def _build_url(self) -> str:
        qs = urllib.parse.urlencode({"key": self._api_key})
        return f"{self._url}?{qs}"

    def _setup_message(self) -> dict[str, Any]:
        return {
            "setup": {
                "model": f"models/{self._model}",
                "generationConfig": {
                    "responseModalities": [LIVE_RESPONSE_MODALITY],
                },
                "inputAudioTranscription": {},
            }
        }

    @staticmethod
    async def _close_quietly(ws: ClientConnection) -> None:
        try:
            await ws.close()
        except Exception:  # pylint: disable=broad-exception-caught
            pass
