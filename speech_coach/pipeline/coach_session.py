"""Coach session bridge — the ``/ws/coach-stream`` protocol.

Translates UI commands (``start``/``stop``/``reset``) into controller calls,
routes browser recognition callbacks and audio frames to the active
recognition source, and pushes metrics, the final report and error envelopes
back to the page.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from fastapi import WebSocket, WebSocketDisconnect

from speech_coach.config import CoachSettings
from speech_coach.constants import BACKEND_DEEPGRAM
from speech_coach.errors import CoachError, ErrorCode, ResourceAcquisitionFailure, send_error
from speech_coach.recognition.base import RecognitionFault, RecognitionSource
from speech_coach.recognition.browser import BROWSER_MESSAGE_TYPES, BrowserRecognitionSource
from speech_coach.recognition.deepgram import DeepgramRecognitionSource
from speech_coach.session.controller import SessionController
from speech_coach.session.state import MetricsSnapshot, SessionStatus
from speech_coach.utils import generate_session_id

logger = logging.getLogger(__name__)


class CoachSessionBridge:
    """One WebSocket connection: one controller, one recognition source."""

    def __init__(self, websocket: WebSocket, settings: CoachSettings) -> None:
        self.websocket = websocket
        self.settings = settings
        self.connection_id = generate_session_id("ws")
        self.audio_chunks: asyncio.Queue[bytes] = asyncio.Queue()
        self.source = self._build_source()
        self.controller = SessionController(
            self.source,
            pause_threshold=settings.pause_threshold,
            tick_interval=settings.tick_interval,
            restart_delay=settings.restart_delay,
            on_update=self._send_metrics,
            on_error=self._send_recognition_error,
        )
        self._start_task: asyncio.Task | None = None

    def _build_source(self) -> RecognitionSource:
        if self.settings.recognition_backend == BACKEND_DEEPGRAM:
            return DeepgramRecognitionSource(self.settings.deepgram_api_key, self.audio_chunks)
        return BrowserRecognitionSource(
            self.websocket.send_json, grant_timeout=self.settings.mic_grant_timeout
        )

    # ------------------------------------------------------------------
    # Receive loop
    # ------------------------------------------------------------------

    async def run(self) -> None:
        await self.websocket.send_json({
            "type": "session_init",
            "connection_id": self.connection_id,
            "backend": self.source.name,
        })
        logger.info("[Bridge] %s connected (backend=%s)", self.connection_id, self.source.name)

        try:
            while True:
                message = await self.websocket.receive()
                if message.get("type") == "websocket.disconnect":
                    break
                if message.get("bytes") is not None:
                    self._handle_audio(message["bytes"])
                    continue
                text = message.get("text")
                if text is not None:
                    await self._handle_text(text)
        except WebSocketDisconnect:
            pass
        finally:
            if self._start_task is not None and not self._start_task.done():
                self._start_task.cancel()
            self.controller.stop()
            logger.info("[Bridge] %s disconnected.", self.connection_id)

    def _handle_audio(self, chunk: bytes) -> None:
        if isinstance(self.source, DeepgramRecognitionSource):
            self.audio_chunks.put_nowait(chunk)

    async def _handle_text(self, text: str) -> None:
        try:
            payload: Any = json.loads(text)
        except json.JSONDecodeError:
            await self._send_bad_message("Message is not valid JSON.")
            return
        if not isinstance(payload, dict):
            await self._send_bad_message("Message must be a JSON object.")
            return

        kind = payload.get("type")
        if kind == "start":
            self._begin_start()
        elif kind == "stop":
            await self._stop()
        elif kind == "reset":
            await self._reset()
        elif kind in BROWSER_MESSAGE_TYPES and isinstance(self.source, BrowserRecognitionSource):
            try:
                self.source.feed(payload)
            except ValueError as exc:
                await self._send_bad_message(str(exc))
        else:
            await self._send_bad_message(f"Unsupported message type: {kind!r}")

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def _begin_start(self) -> None:
        # The browser answers the permission prompt on this same socket, so
        # acquisition must not block the receive loop.
        if self._start_task is not None and not self._start_task.done():
            logger.debug("[Bridge] start already in progress.")
            return
        self._start_task = asyncio.create_task(self._start())

    async def _start(self) -> None:
        status = self.controller.status
        if status is SessionStatus.LISTENING:
            await self._send_state_error("A session is already running.")
            return
        if status is SessionStatus.STOPPED:
            await self._send_state_error("A stopped session must be reset before starting again.")
            return
        try:
            session_id = await self.controller.start()
        except ResourceAcquisitionFailure as exc:
            await send_error(self.websocket, CoachError.mic_unavailable(exc, self.connection_id))
            return
        await self.websocket.send_json({
            "type": "control",
            "action": "session_started",
            "session_id": session_id,
        })

    async def _stop(self) -> None:
        report = self.controller.stop()
        if report is None:
            await self._send_state_error("No session is running.")
            return
        await self.websocket.send_json({"type": "report", **report.to_dict()})

    async def _reset(self) -> None:
        if self.controller.status is not SessionStatus.STOPPED:
            await self._send_state_error("Only a stopped session can be reset.")
            return
        self.controller.reset()
        await self.websocket.send_json({"type": "control", "action": "session_reset"})

    async def _send_state_error(self, reason: str) -> None:
        await send_error(
            self.websocket,
            CoachError.session_state(reason, self.connection_id, self.controller.status.value),
        )

    # ------------------------------------------------------------------
    # Controller callbacks
    # ------------------------------------------------------------------

    async def _send_metrics(self, snapshot: MetricsSnapshot) -> None:
        # Runs inside the controller's tasks; a closed socket must not kill them.
        try:
            await self.websocket.send_json({"type": "metrics", **snapshot.to_dict()})
        except Exception as exc:
            logger.debug("[Bridge] Failed to push metrics: %s", exc)

    async def _send_recognition_error(self, fault: RecognitionFault) -> None:
        await send_error(
            self.websocket, CoachError.recognition_failed(fault, self.controller.session_id)
        )

    async def _send_bad_message(self, reason: str) -> None:
        await send_error(self.websocket, CoachError.bad_message(reason, self.connection_id))


async def run_coach_session(websocket: WebSocket, settings: CoachSettings) -> None:
    """Serve one accepted WebSocket until the client disconnects."""
    await CoachSessionBridge(websocket, settings).run()
