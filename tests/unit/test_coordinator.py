# pylint: disable=missing-module-docstring,missing-function-docstring,missing-class-docstring

from __future__ import annotations

import asyncio
import base64
import json
from typing import Any

import pytest
import pytest_asyncio

from audio.wav import encode_wav
from session.connection_status import ConnectionPhase
from session.coordinator import ConnectionCoordinator
from spec import STATUS_MESSAGE_ACTIVE, STATUS_MESSAGE_BATCH_ONLY

from fakes import FakeRelay, FakeTranscriber, wait_until


class Harness:
    """One coordinator wired to in-process fakes; records every client message."""

    def __init__(
        self,
        *,
        relay: FakeRelay | None = None,
        transcriber: FakeTranscriber | None = None,
        interval_s: float = 60.0,
    ) -> None:
        self.sent: list[dict[str, Any]] = []
        self.relay = relay or FakeRelay()
        self.transcriber = transcriber or FakeTranscriber()
        self.factory_ids: list[str] = []
        self.coordinator = ConnectionCoordinator(
            send_json=self._send,
            relay_factory=self._factory,
            batch_transcriber=self.transcriber,
            batch_interval_s=interval_s,
            connection_id="conn_test",
        )

    async def _send(self, msg: dict[str, Any]) -> None:
        self.sent.append(msg)

    def _factory(self, connection_id: str) -> FakeRelay:
        self.factory_ids.append(connection_id)
        return self.relay

    @property
    def state(self):
        return self.coordinator.state

    def of_type(self, msg_type: str) -> list[dict[str, Any]]:
        return [m for m in self.sent if m["type"] == msg_type]

    async def start_active(self) -> None:
        await self.coordinator.start()
        await wait_until(lambda: self.state.phase is ConnectionPhase.ACTIVE)


def audio_json(pcm: bytes) -> str:
    return json.dumps({"type": "audio", "audio": base64.b64encode(pcm).decode()})


@pytest_asyncio.fixture
async def harness():
    h = Harness()
    yield h
    await h.coordinator.close("test_teardown")


# ---------------------------------------------------------------------
# Startup
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_ready_relay_sends_status_and_starts_timer(harness: Harness):
    await harness.start_active()

    assert harness.factory_ids == ["conn_test"]
    assert harness.sent[0] == {"type": "status", "message": STATUS_MESSAGE_ACTIVE}
    assert harness.state.batch_timer is not None


@pytest.mark.asyncio
async def test_relay_open_failure_falls_back_to_batch_only():
    h = Harness(relay=FakeRelay(fail_open=True))
    await h.start_active()

    assert [m["type"] for m in h.sent] == ["error", "status"]
    assert "Failed to connect to Gemini Live" in h.sent[0]["message"]
    assert h.sent[1]["message"] == STATUS_MESSAGE_BATCH_ONLY

    await h.coordinator.on_audio(b"\x01\x00" * 64)
    h.coordinator.on_batch_tick()
    await wait_until(lambda: len(h.of_type("corrected_transcription")) == 1)

    assert h.relay.sent == []
    await h.coordinator.close()


class RaisingOpenRelay(FakeRelay):
    async def open(self) -> None:
        raise RuntimeError("handshake exploded")


@pytest.mark.asyncio
async def test_relay_open_raising_still_starts_batch_path():
    h = Harness(relay=RaisingOpenRelay(), interval_s=0.05)
    await h.start_active()

    assert [m["type"] for m in h.sent] == ["error", "status"]
    assert "handshake exploded" in h.sent[0]["message"]
    assert h.sent[1]["message"] == STATUS_MESSAGE_BATCH_ONLY
    assert h.state.batch_timer is not None

    await h.coordinator.on_audio(b"\x03\x00" * 32)
    await wait_until(lambda: len(h.of_type("corrected_transcription")) == 1)
    await h.coordinator.close()


# ---------------------------------------------------------------------
# End to end through the real timer
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_end_to_end_single_window():
    h = Harness(transcriber=FakeTranscriber(["the whole window"]), interval_s=0.05)
    await h.start_active()

    fragments = [bytes([i, 0]) * 4096 for i in range(10)]
    for pcm in fragments:
        await h.coordinator.on_json_message(audio_json(pcm))
    h.relay.emit_transcript("the whole")
    h.relay.emit_transcript("the whole window", turn_complete=True)

    await wait_until(lambda: len(h.of_type("corrected_transcription")) == 1)
    await asyncio.sleep(0.15)  # further ticks see an empty window

    assert [m["text"] for m in h.of_type("realtime_transcription")] == [
        "the whole",
        "the whole window",
    ]
    assert h.relay.sent == fragments

    assert len(h.transcriber.calls) == 1
    wav, _ = h.transcriber.calls[0]
    assert wav == encode_wav(b"".join(fragments), 16000, 1, 16)

    corrected = h.of_type("corrected_transcription")[0]
    assert corrected["chunkId"] == 0
    assert corrected["text"] == "the whole window"
    assert isinstance(corrected["timestamp"], int)
    await h.coordinator.close()


# ---------------------------------------------------------------------
# Batch scheduling
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_empty_tick_submits_nothing(harness: Harness):
    await harness.start_active()

    harness.coordinator.on_batch_tick()

    assert harness.state.batch_task is None
    assert harness.transcriber.calls == []
    assert harness.state.window.next_sequence_number == 0


@pytest.mark.asyncio
async def test_empty_audio_payloads_never_reach_batch_api(harness: Harness):
    await harness.start_active()

    await harness.coordinator.on_json_message('{"type": "audio", "audio": ""}')
    await harness.coordinator.on_json_message(audio_json(b"\x01"))  # trimmed to nothing
    harness.coordinator.on_batch_tick()

    assert harness.state.batch_task is None
    assert harness.transcriber.calls == []
    assert harness.relay.sent == []
    assert harness.state.window.next_sequence_number == 0


@pytest.mark.asyncio
async def test_tick_while_in_flight_defers_without_draining(harness: Harness):
    gate = asyncio.Event()
    harness.transcriber.gate = gate
    await harness.start_active()

    await harness.coordinator.on_audio(b"\x01\x00" * 8)
    harness.coordinator.on_batch_tick()
    await wait_until(lambda: len(harness.transcriber.calls) == 1)

    await harness.coordinator.on_audio(b"\x02\x00" * 8)
    harness.coordinator.on_batch_tick()

    assert harness.state.batches_deferred == 1
    assert harness.state.window.fragment_count == 1
    assert len(harness.transcriber.calls) == 1

    gate.set()
    await harness.state.batch_task
    harness.coordinator.on_batch_tick()
    await harness.state.batch_task

    assert harness.transcriber.max_in_flight == 1
    second_wav, _ = harness.transcriber.calls[1]
    assert second_wav[44:] == b"\x02\x00" * 8
    assert [m["chunkId"] for m in harness.of_type("corrected_transcription")] == [0, 1]


@pytest.mark.asyncio
async def test_sentinel_result_sends_nothing():
    h = Harness(transcriber=FakeTranscriber(["Unclear audio."]))
    await h.start_active()

    await h.coordinator.on_audio(b"\x00\x00" * 32)
    h.coordinator.on_batch_tick()
    await h.state.batch_task

    assert h.of_type("corrected_transcription") == []
    assert not h.state.batch_in_flight
    await h.coordinator.close()


@pytest.mark.asyncio
async def test_batch_failure_keeps_connection_usable():
    h = Harness(transcriber=FakeTranscriber([RuntimeError("503"), "second try"]))
    await h.start_active()

    await h.coordinator.on_audio(b"\x01\x00" * 4)
    h.coordinator.on_batch_tick()
    await h.state.batch_task

    assert h.of_type("corrected_transcription") == []
    assert h.state.phase is ConnectionPhase.ACTIVE

    await h.coordinator.on_audio(b"\x02\x00" * 4)
    h.coordinator.on_batch_tick()
    await h.state.batch_task

    corrected = h.of_type("corrected_transcription")
    assert len(corrected) == 1
    assert corrected[0]["chunkId"] == 1
    await h.coordinator.close()


# ---------------------------------------------------------------------
# Teardown
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_close_discards_window_and_closes_relay(logs: list[dict[str, Any]]):
    h = Harness()
    await h.start_active()
    await h.coordinator.on_audio(b"\x01\x00" * 16)
    await h.coordinator.on_audio(b"\x02\x00" * 16)

    await h.coordinator.close("client_disconnect")
    await h.coordinator.close("again")

    await wait_until(lambda: h.relay.close_calls == 1)
    assert h.state.phase is ConnectionPhase.CLOSED
    assert h.state.window.fragment_count == 0
    assert h.transcriber.calls == []

    discarded = [e for e in logs if e["event_type"] == "WINDOW_DISCARDED"]
    assert discarded[0]["fragments"] == 2
    disconnects = [e for e in logs if e["event_type"] == "CLIENT_DISCONNECTED"]
    assert len(disconnects) == 1
    assert disconnects[0]["reason"] == "client_disconnect"


@pytest.mark.asyncio
async def test_result_arriving_after_close_is_dropped(logs: list[dict[str, Any]]):
    h = Harness()
    gate = asyncio.Event()
    h.transcriber.gate = gate
    await h.start_active()

    await h.coordinator.on_audio(b"\x01\x00" * 16)
    h.coordinator.on_batch_tick()
    await wait_until(lambda: len(h.transcriber.calls) == 1)

    await h.coordinator.close("client_disconnect")
    gate.set()
    await h.state.batch_task

    assert h.of_type("corrected_transcription") == []
    assert any(e["event_type"] == "BATCH_RESULT_DISCARDED" for e in logs)


@pytest.mark.asyncio
async def test_audio_after_close_is_ignored(harness: Harness):
    await harness.start_active()
    await harness.coordinator.close()

    await harness.coordinator.on_audio(b"\x01\x00")

    assert harness.state.fragments_received == 0
    assert harness.relay.sent == []


# ---------------------------------------------------------------------
# Inbound routing
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_malformed_json_reports_error_and_stays_open(harness: Harness):
    await harness.start_active()

    await harness.coordinator.on_json_message("{not json")

    errors = harness.of_type("error")
    assert len(errors) == 1
    assert harness.state.phase is ConnectionPhase.ACTIVE


@pytest.mark.asyncio
async def test_bad_audio_payload_is_dropped(harness: Harness):
    await harness.start_active()

    await harness.coordinator.on_json_message('{"type": "audio", "audio": "%%%"}')

    assert len(harness.of_type("error")) == 1
    assert harness.state.fragments_received == 0


@pytest.mark.asyncio
async def test_unknown_type_is_ignored(harness: Harness, logs: list[dict[str, Any]]):
    await harness.start_active()
    before = len(harness.sent)

    await harness.coordinator.on_json_message('{"type": "ping"}')

    assert len(harness.sent) == before
    assert any(e["event_type"] == "UNKNOWN_MESSAGE_TYPE" for e in logs)


@pytest.mark.asyncio
async def test_text_is_passed_to_relay(harness: Harness):
    await harness.start_active()

    await harness.coordinator.on_json_message('{"type": "text", "text": "hello"}')

    assert harness.relay.texts == ["hello"]


# ---------------------------------------------------------------------
# Relay events mid-session
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_relay_error_mid_session_keeps_batch_path(harness: Harness):
    await harness.start_active()

    harness.relay.emit_error("Gemini Live connection error: reset")
    await wait_until(lambda: len(harness.of_type("error")) == 1)

    assert harness.state.phase is ConnectionPhase.ACTIVE
    assert len(harness.of_type("status")) == 1

    await harness.coordinator.on_audio(b"\x05\x00" * 4)
    harness.coordinator.on_batch_tick()
    await harness.state.batch_task
    assert len(harness.of_type("corrected_transcription")) == 1


@pytest.mark.asyncio
async def test_relay_closed_is_reported(harness: Harness):
    await harness.start_active()

    harness.relay.emit_closed("quota exceeded")
    await wait_until(lambda: bool(harness.of_type("closed")))

    assert harness.of_type("closed") == [{"type": "closed", "reason": "quota exceeded"}]
    assert harness.state.batch_timer is not None
