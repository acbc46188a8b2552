"""Tests for the /ws/coach-stream bridge between the page and the controller.

Run:
    uv run pytest tests/test_coach_session.py -v
"""

import asyncio
import json

import pytest

from speech_coach.config import CoachSettings
from speech_coach.pipeline.coach_session import CoachSessionBridge
from speech_coach.session.state import SessionStatus


class _FakeWebSocket:
    """Minimal stand-in for a Starlette WebSocket."""

    def __init__(self) -> None:
        self.incoming: asyncio.Queue = asyncio.Queue()
        self.sent: list[dict] = []

    async def receive(self) -> dict:
        return await self.incoming.get()

    async def send_json(self, data: dict) -> None:
        self.sent.append(data)

    def push(self, payload: dict) -> None:
        self.incoming.put_nowait({"type": "websocket.receive", "text": json.dumps(payload)})

    def push_raw(self, text: str) -> None:
        self.incoming.put_nowait({"type": "websocket.receive", "text": text})

    def push_bytes(self, data: bytes) -> None:
        self.incoming.put_nowait({"type": "websocket.receive", "bytes": data})

    def disconnect(self) -> None:
        self.incoming.put_nowait({"type": "websocket.disconnect", "code": 1000})

    def of_type(self, kind: str) -> list[dict]:
        return [m for m in self.sent if m.get("type") == kind]

    def actions(self) -> list[str]:
        return [m["action"] for m in self.of_type("control")]


async def _wait_for(predicate, attempts: int = 100) -> None:
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0.01)
    raise AssertionError("condition not met")


def _settings(**overrides) -> CoachSettings:
    values = dict(tick_interval=3600.0, restart_delay=0.0, mic_grant_timeout=1.0)
    values.update(overrides)
    return CoachSettings(**values)


async def _open(settings: CoachSettings | None = None):
    ws = _FakeWebSocket()
    bridge = CoachSessionBridge(ws, settings or _settings())
    task = asyncio.create_task(bridge.run())
    await _wait_for(lambda: ws.of_type("session_init"))
    return ws, bridge, task


async def _start_listening(ws: _FakeWebSocket) -> None:
    ws.push({"type": "start"})
    await _wait_for(lambda: "acquire_microphone" in ws.actions())
    ws.push({"type": "mic_granted"})
    await _wait_for(lambda: "start_recognition" in ws.actions())


class TestSessionFlow:
    @pytest.mark.asyncio
    async def test_session_init_announces_backend(self):
        ws, _, task = await _open()
        init = ws.of_type("session_init")[0]
        assert init["backend"] == "browser"
        assert init["connection_id"].startswith("ws-")
        ws.disconnect()
        await task

    @pytest.mark.asyncio
    async def test_start_result_stop_produces_metrics_and_report(self):
        ws, bridge, task = await _open()
        await _start_listening(ws)
        assert "session_started" in ws.actions()

        ws.push({
            "type": "recognition_result",
            "resultIndex": 0,
            "results": [{"isFinal": True, "transcript": "hello world", "confidence": 0.9}],
        })
        await _wait_for(lambda: ws.of_type("metrics"))
        metrics = ws.of_type("metrics")[-1]
        assert metrics["confidence_percent"] == 90
        assert metrics["pause_count"] == 0

        ws.push({"type": "stop"})
        await _wait_for(lambda: ws.of_type("report"))
        report = ws.of_type("report")[0]
        assert set(report) == {"type", "duration_seconds", "wpm", "pause_count", "confidence_percent"}
        assert report["confidence_percent"] == 90
        assert bridge.controller.status is SessionStatus.STOPPED
        await _wait_for(lambda: "stop_recognition" in ws.actions())

        ws.push({"type": "reset"})
        await _wait_for(lambda: "session_reset" in ws.actions())
        assert bridge.controller.status is SessionStatus.IDLE

        ws.disconnect()
        await task

    @pytest.mark.asyncio
    async def test_unexpected_end_restarts_browser_recognition(self):
        ws, bridge, task = await _open()
        await _start_listening(ws)

        ws.push({"type": "recognition_end", "expected": False})
        await _wait_for(lambda: ws.actions().count("start_recognition") == 2)
        assert bridge.controller.status is SessionStatus.LISTENING
        assert bridge.controller.restart_count == 1

        ws.disconnect()
        await task

    @pytest.mark.asyncio
    async def test_disconnect_stops_live_session(self):
        ws, bridge, task = await _open()
        await _start_listening(ws)

        ws.disconnect()
        await task

        assert bridge.controller.status is SessionStatus.STOPPED


class TestErrors:
    @pytest.mark.asyncio
    async def test_denied_microphone_is_a_blocking_error(self):
        ws, bridge, task = await _open()
        ws.push({"type": "start"})
        await _wait_for(lambda: "acquire_microphone" in ws.actions())
        ws.push({"type": "mic_denied", "reason": "Permission denied"})

        await _wait_for(lambda: ws.of_type("error"))
        error = ws.of_type("error")[0]
        assert error["code"] == "E_MIC_UNAVAILABLE"
        assert error["recoverable"] is False
        assert error["details"] == {"source": "browser"}
        assert bridge.controller.status is SessionStatus.IDLE

        ws.disconnect()
        await task

    @pytest.mark.asyncio
    async def test_recognition_error_is_recoverable(self):
        ws, bridge, task = await _open()
        await _start_listening(ws)

        ws.push({"type": "recognition_error", "error": "network", "message": "Network down"})
        await _wait_for(lambda: ws.of_type("error"))
        error = ws.of_type("error")[0]
        assert error["code"] == "E_RECOGNITION_FAILED"
        assert error["recoverable"] is True
        assert error["details"] == {"engine_code": "network"}
        assert bridge.controller.status is SessionStatus.LISTENING

        ws.disconnect()
        await task

    @pytest.mark.asyncio
    async def test_invalid_json_keeps_connection_open(self):
        ws, _, task = await _open()
        ws.push_raw("{not json")
        ws.push_raw("[1, 2]")
        ws.push({"type": "dance"})
        await _wait_for(lambda: len(ws.of_type("error")) == 3)

        assert {e["code"] for e in ws.of_type("error")} == {"E_BAD_MESSAGE"}
        assert not task.done()

        ws.disconnect()
        await task

    @pytest.mark.asyncio
    async def test_malformed_result_is_reported(self):
        ws, _, task = await _open()
        await _start_listening(ws)

        ws.push({"type": "recognition_result", "resultIndex": "x", "results": []})
        await _wait_for(lambda: ws.of_type("error"))
        assert ws.of_type("error")[0]["code"] == "E_BAD_MESSAGE"

        ws.disconnect()
        await task

    @pytest.mark.asyncio
    async def test_stop_without_session(self):
        ws, _, task = await _open()
        ws.push({"type": "stop"})
        await _wait_for(lambda: ws.of_type("error"))
        assert ws.of_type("error")[0]["code"] == "E_SESSION_STATE"

        ws.disconnect()
        await task

    @pytest.mark.asyncio
    async def test_start_while_stopped_requires_reset(self):
        ws, bridge, task = await _open()
        await _start_listening(ws)
        ws.push({"type": "stop"})
        await _wait_for(lambda: ws.of_type("report"))

        ws.push({"type": "start"})
        await _wait_for(lambda: ws.of_type("error"))
        error = ws.of_type("error")[0]
        assert error["code"] == "E_SESSION_STATE"
        assert error["details"] == {"status": "stopped"}
        assert ws.actions().count("session_started") == 1
        assert ws.actions().count("acquire_microphone") == 1
        assert bridge.controller.status is SessionStatus.STOPPED

        ws.disconnect()
        await task

    @pytest.mark.asyncio
    async def test_second_start_while_listening_is_rejected(self):
        ws, bridge, task = await _open()
        await _start_listening(ws)
        await _wait_for(lambda: "session_started" in ws.actions())
        session_id = bridge.controller.session_id

        ws.push({"type": "start"})
        await _wait_for(lambda: ws.of_type("error"))
        assert ws.of_type("error")[0]["code"] == "E_SESSION_STATE"
        assert ws.actions().count("session_started") == 1
        assert bridge.controller.session_id == session_id

        ws.disconnect()
        await task

    @pytest.mark.asyncio
    async def test_reset_while_listening_is_rejected(self):
        ws, bridge, task = await _open()
        await _start_listening(ws)

        ws.push({"type": "reset"})
        await _wait_for(lambda: ws.of_type("error"))
        error = ws.of_type("error")[0]
        assert error["code"] == "E_SESSION_STATE"
        assert error["details"] == {"status": "listening"}
        assert "session_reset" not in ws.actions()
        assert bridge.controller.status is SessionStatus.LISTENING

        ws.disconnect()
        await task


class TestDeepgramBackend:
    @pytest.mark.asyncio
    async def test_missing_key_rejects_start(self):
        ws, bridge, task = await _open(_settings(recognition_backend="deepgram", deepgram_api_key=""))
        assert ws.of_type("session_init")[0]["backend"] == "deepgram"

        ws.push({"type": "start"})
        await _wait_for(lambda: ws.of_type("error"))
        error = ws.of_type("error")[0]
        assert error["code"] == "E_MIC_UNAVAILABLE"
        assert error["details"] == {"source": "deepgram"}
        assert bridge.controller.status is SessionStatus.IDLE

        ws.disconnect()
        await task

    @pytest.mark.asyncio
    async def test_audio_frames_are_queued(self):
        ws, bridge, task = await _open(_settings(recognition_backend="deepgram", deepgram_api_key="k"))
        ws.push_bytes(b"\x01\x02" * 16)
        await _wait_for(lambda: not bridge.audio_chunks.empty())
        assert bridge.audio_chunks.get_nowait() == b"\x01\x02" * 16

        ws.disconnect()
        await task

    @pytest.mark.asyncio
    async def test_browser_backend_ignores_audio(self):
        ws, bridge, task = await _open()
        ws.push_bytes(b"\x00" * 8)
        ws.push({"type": "stop"})
        await _wait_for(lambda: ws.of_type("error"))
        assert bridge.audio_chunks.empty()

        ws.disconnect()
        await task
