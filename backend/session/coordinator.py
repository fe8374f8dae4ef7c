"""
Connection coordinator.

One coordinator == one client websocket connection.

Responsibilities:
- Owns the ConnectionState (batch window, timer, relay, in-flight flag)
- Multiplexes every inbound audio fragment to BOTH paths:
    * appended to the batch window
    * forwarded to the streaming relay
  independently of each other's outcome
- Drives the batch submission pipeline on a fixed timer, at most one
  submission in flight at a time
- Translates relay events and batch results into client messages
- Tears everything down on disconnect without submitting a partial window

State machine:
    INIT    accepted; relay opening; fragments already accumulate
    ACTIVE  relay ready (or failed -> batch-only); batch timer running
    CLOSING/CLOSED  timer stopped, window discarded, relay close requested

NOT responsible for:
- Provider protocols (adapters/asr)
- Reading from / writing to the websocket itself (server.routes)
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable
from uuid import uuid4

from adapters.asr.base import BatchTranscriber, StreamingRelay
from adapters.asr.events import (
    RelayClosed,
    RelayError,
    RelayEvent,
    RelayReady,
    RelayTranscript,
)
from audio.frames import AudioFragment
from batching.pipeline import BatchResult, BatchSubmissionPipeline
from batching.window import DrainedBatch
from observability.logger import log_event
from protocol.messages import (
    AudioMessage,
    InvalidAudioPayload,
    MalformedMessage,
    TextMessage,
    closed_message,
    corrected_transcription_message,
    error_message,
    parse_client_message,
    realtime_transcription_message,
    status_message,
)
from session.connection_state import ConnectionState
from session.connection_status import ConnectionPhase
from spec import (
    AUDIO_PROGRESS_LOG_EVERY,
    BATCH_INTERVAL_S,
    LOG_PAYLOAD_PREVIEW_CHARS,
    STATUS_MESSAGE_ACTIVE,
    STATUS_MESSAGE_BATCH_ONLY,
)

SendJson = Callable[[dict[str, Any]], Awaitable[None]]
RelayFactory = Callable[[str], StreamingRelay]


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def _new_connection_id() -> str:
    return f"conn_{uuid4().hex[:12]}"


# ------------------------------------------------------------------
# ConnectionCoordinator
# ------------------------------------------------------------------

class ConnectionCoordinator:
    """Dual-path relay for a single client connection."""

    def __init__(
        self,
        *,
        send_json: SendJson,
        relay_factory: RelayFactory,
        batch_transcriber: BatchTranscriber,
        batch_interval_s: float = BATCH_INTERVAL_S,
        connection_id: str | None = None,
    ) -> None:
        self.state = ConnectionState(connection_id=connection_id or _new_connection_id())
        self._send_json = send_json
        self._relay_factory = relay_factory
        self._batch_interval_s = batch_interval_s
        self._pipeline = BatchSubmissionPipeline(
            transcriber=batch_transcriber,
            connection_id=self.state.connection_id,
        )
        self._relay_close_task: asyncio.Task[None] | None = None

    @property
    def connection_id(self) -> str:
        return self.state.connection_id

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """INIT: start opening the streaming session; window starts empty."""
        st = self.state
        log_event({
            "event_type": "CLIENT_CONNECTED",
            **st.log_context(),
        })

        relay = self._relay_factory(st.connection_id)
        st.relay = relay
        st.relay_pump = asyncio.create_task(self._pump_relay_events(relay))
        st.relay_open_task = asyncio.create_task(self._open_relay(relay))

    async def _open_relay(self, relay: StreamingRelay) -> None:
        """
        Run the relay handshake.

        A relay that raises instead of reporting RelayError is treated the
        same way: the connection falls back to batch-only.
        """
        try:
            await relay.open()
        except Exception as e:  # pylint: disable=broad-exception-caught
            log_event({
                "level": "ERROR",
                "event_type": "RELAY_OPEN_RAISED",
                **self.state.log_context(),
                "exception": type(e).__name__,
                "message": str(e),
            })
            await self._on_relay_event(
                RelayError(ts_ms=_now_ms(), message=f"Failed to open streaming session: {e}")
            )

    async def close(self, reason: str | None = None) -> None:
        """
        CLOSING: stop the timer, drop the undrained window, request relay close.

        Does not wait for the relay to finish closing, and does not cancel an
        in-flight batch submission (its result is discarded). Idempotent.
        """
        st = self.state
        if not st.is_open:
            return
        st.phase = ConnectionPhase.CLOSING

        if st.batch_timer is not None and not st.batch_timer.done():
            st.batch_timer.cancel()
        st.batch_timer = None

        dropped = st.window.discard()
        if dropped:
            log_event({
                "level": "WARNING",
                "event_type": "WINDOW_DISCARDED",
                **st.log_context(),
                "fragments": dropped,
            })

        if st.relay is not None:
            self._relay_close_task = asyncio.create_task(st.relay.close())

        if st.relay_pump is not None and not st.relay_pump.done():
            st.relay_pump.cancel()
        st.relay_pump = None

        st.phase = ConnectionPhase.CLOSED
        log_event({
            "event_type": "CLIENT_DISCONNECTED",
            **st.log_context(),
            "reason": reason,
            "fragments_received": st.fragments_received,
            "batches_submitted": st.batches_submitted,
            "batches_deferred": st.batches_deferred,
            "batch_in_flight": st.batch_in_flight,
        })

    def _activate(self) -> None:
        """INIT -> ACTIVE: start the repeating batch timer (once)."""
        st = self.state
        if st.phase is not ConnectionPhase.INIT:
            return
        st.phase = ConnectionPhase.ACTIVE
        st.batch_timer = asyncio.create_task(self._batch_timer_loop())
        log_event({
            "event_type": "BATCH_TIMER_STARTED",
            **st.log_context(),
            "interval_s": self._batch_interval_s,
        })

    # ------------------------------------------------------------------
    # Inbound (client -> relay)
    # ------------------------------------------------------------------

    async def on_json_message(self, payload: str) -> None:
        """Route one inbound text frame."""
        st = self.state
        if not st.is_open:
            return

        try:
            msg = parse_client_message(payload)
        except InvalidAudioPayload as e:
            log_event({
                "level": "WARNING",
                "event_type": "AUDIO_PAYLOAD_INVALID",
                **st.log_context(),
                "error": str(e),
            })
            await self._send(error_message(str(e)))
            return
        except MalformedMessage as e:
            log_event({
                "level": "WARNING",
                "event_type": "JSON_DECODE_ERROR",
                **st.log_context(),
                "error": str(e),
                "payload_preview": payload[:LOG_PAYLOAD_PREVIEW_CHARS],
            })
            await self._send(error_message(str(e)))
            return

        if isinstance(msg, AudioMessage):
            await self.on_audio(msg.pcm_bytes)
        elif isinstance(msg, TextMessage):
            await self._forward_text(msg.text)
        else:
            log_event({
                "event_type": "UNKNOWN_MESSAGE_TYPE",
                **st.log_context(),
                "msg_type": msg.msg_type,
            })

    async def on_audio(self, pcm_bytes: bytes) -> None:
        """
        Multiplex one fragment to both paths.

        The window append happens before any await, so it is ordered with
        respect to drains by arrival, not by relay latency.
        """
        st = self.state
        if not st.is_open:
            return

        # Empty payloads (or a lone trimmed byte) carry no samples.
        if not pcm_bytes:
            log_event({
                "level": "DEBUG",
                "event_type": "AUDIO_EMPTY_FRAGMENT",
                **st.log_context(),
            })
            return

        fragment = AudioFragment(
            pcm_bytes=pcm_bytes,
            arrival_index=st.fragments_received,
            ts_ms=_now_ms(),
        )
        st.fragments_received += 1
        st.window.append(fragment)

        if st.fragments_received % AUDIO_PROGRESS_LOG_EVERY == 0:
            log_event({
                "level": "DEBUG",
                "event_type": "AUDIO_PROGRESS",
                **st.log_context(),
                "fragments_received": st.fragments_received,
                "window_fragments": st.window.fragment_count,
            })

        relay = st.relay
        if relay is None:
            return
        try:
            await relay.send(fragment.pcm_bytes)
        except Exception as e:  # pylint: disable=broad-exception-caught
            log_event({
                "level": "WARNING",
                "event_type": "RELAY_FORWARD_FAILED",
                **st.log_context(),
                "exception": type(e).__name__,
                "message": str(e),
            })

    async def _forward_text(self, text: str) -> None:
        relay = self.state.relay
        if relay is None:
            return
        try:
            await relay.send_text(text)
        except Exception as e:  # pylint: disable=broad-exception-caught
            log_event({
                "level": "WARNING",
                "event_type": "RELAY_FORWARD_FAILED",
                **self.state.log_context(),
                "exception": type(e).__name__,
                "message": str(e),
            })

    # ------------------------------------------------------------------
    # Batch path
    # ------------------------------------------------------------------

    async def _batch_timer_loop(self) -> None:
        while True:
            await asyncio.sleep(self._batch_interval_s)
            self.on_batch_tick()

    def on_batch_tick(self) -> None:
        """
        Timer body: drain the window and launch a submission.

        - In flight already: do not drain; audio keeps accumulating and goes
          out with the next tick after completion.
        - Empty window: no submission, no sequence number consumed.
        """
        st = self.state
        if not st.is_open:
            return

        if st.batch_in_flight:
            st.batches_deferred += 1
            log_event({
                "event_type": "BATCH_DEFERRED",
                **st.log_context(),
                "window_fragments": st.window.fragment_count,
            })
            return

        batch = st.window.drain_and_reset()
        if batch is None:
            return

        st.batch_in_flight = True
        st.batches_submitted += 1
        log_event({
            "event_type": "BATCH_DRAINED",
            **st.log_context(),
            "sequence_number": batch.sequence_number,
            "fragments": len(batch.fragments),
            "bytes": batch.num_bytes,
        })
        st.batch_task = asyncio.create_task(self._submit_batch(batch))

    async def _submit_batch(self, batch: DrainedBatch) -> None:
        st = self.state
        try:
            result = await self._pipeline.submit(batch.fragments, batch.sequence_number)
        finally:
            st.batch_in_flight = False

        if result is None:
            return

        if not st.is_open:
            log_event({
                "event_type": "BATCH_RESULT_DISCARDED",
                **st.log_context(),
                "sequence_number": result.sequence_number,
            })
            return

        await self._deliver_batch_result(result)

    async def _deliver_batch_result(self, result: BatchResult) -> None:
        log_event({
            "event_type": "BATCH_RESULT",
            **self.state.log_context(),
            "sequence_number": result.sequence_number,
            "chars": len(result.text),
        })
        await self._send(
            corrected_transcription_message(
                result.text,
                chunk_id=result.sequence_number,
                timestamp_ms=result.received_at_ms,
            )
        )

    # ------------------------------------------------------------------
    # Streaming path (relay -> client)
    # ------------------------------------------------------------------

    async def _pump_relay_events(self, relay: StreamingRelay) -> None:
        """Forward relay events one at a time, in the order the relay produced them."""
        while True:
            event = await relay.events.get()
            await self._on_relay_event(event)

    async def _on_relay_event(self, event: RelayEvent) -> None:
        st = self.state

        if isinstance(event, RelayReady):
            if st.phase is ConnectionPhase.INIT:
                await self._send(status_message(STATUS_MESSAGE_ACTIVE))
                self._activate()

        elif isinstance(event, RelayTranscript):
            await self._send(realtime_transcription_message(event.text))

        elif isinstance(event, RelayError):
            await self._send(error_message(event.message))
            if st.phase is ConnectionPhase.INIT:
                # Streaming never came up: keep the batch path running alone.
                await self._send(status_message(STATUS_MESSAGE_BATCH_ONLY))
                self._activate()

        elif isinstance(event, RelayClosed):
            await self._send(closed_message(event.reason))

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def _send(self, msg: dict[str, Any]) -> None:
        if not self.state.is_open:
            return
        try:
            await self._send_json(msg)
        except Exception as e:  # pylint: disable=broad-exception-caught
            # Client transport is going away; the route's receive loop will
            # observe the disconnect and call close().
            log_event({
                "level": "WARNING",
                "event_type": "CLIENT_SEND_FAILED",
                **self.state.log_context(),
                "msg_type": msg.get("type"),
                "exception": type(e).__name__,
            })
