"""Deepgram streaming recognition source for server-side ASR.

The browser streams raw PCM-16 microphone frames over the coach WebSocket;
the bridge pushes them onto an ``asyncio.Queue`` that this source forwards to
Deepgram's live endpoint with ``interim_results`` enabled.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from typing import Any

import websockets

from speech_coach.constants import (
    DEEPGRAM_LANGUAGE,
    DEEPGRAM_MODEL,
    DEEPGRAM_SAMPLE_RATE,
)
from speech_coach.errors import RecognitionStreamError, ResourceAcquisitionFailure
from speech_coach.recognition.base import (
    RecognitionFault,
    RecognitionSignal,
    RecognitionSource,
    RecognitionStarted,
)
from speech_coach.session.state import RecognitionEvent, ResultSegment

logger = logging.getLogger(__name__)

_KEEPALIVE_INTERVAL_S = 5.0  # Deepgram closes idle streams after ~10s


def parse_deepgram_message(payload: Any) -> RecognitionSignal | None:
    """Translate one Deepgram live message into a recognition signal.

    ``Results`` carry a single alternative for the current utterance, so each
    becomes a one-segment event. Metadata, other bookkeeping messages and
    anything that is not a JSON object return ``None``.
    """
    if not isinstance(payload, dict):
        return None
    msg_type = payload.get("type", "")
    if msg_type == "Results":
        channel = payload.get("channel")
        alternatives = channel.get("alternatives") if isinstance(channel, dict) else None
        best = alternatives[0] if isinstance(alternatives, list) and alternatives else {}
        if not isinstance(best, dict):
            best = {}
        segment = ResultSegment.from_dict({
            "is_final": payload.get("is_final", False),
            "transcript": best.get("transcript", ""),
            "confidence": best.get("confidence", 0.0),
        })
        return RecognitionEvent(result_index=0, results=(segment,))
    if msg_type == "Error":
        return RecognitionFault(
            code=str(payload.get("variant") or "deepgram-error"),
            message=str(payload.get("description") or payload.get("message") or ""),
        )
    if msg_type == "Metadata":
        logger.debug("[Deepgram] Metadata: request_id=%s", payload.get("request_id"))
    return None


class DeepgramRecognitionSource(RecognitionSource):
    """Streams queued PCM-16 audio to Deepgram and yields recognition signals.

    Parameters
    ----------
    api_key : str
        Deepgram API key (from DEEPGRAM_API_KEY env var).
    audio_chunks : asyncio.Queue
        Raw PCM-16 LE mono frames. Every subscription ends with a
        ``CloseStream`` so Deepgram flushes its last results.
    sample_rate : int
        Sample rate of the incoming PCM stream (default 16 kHz).
    """

    name = "deepgram"
    WS_URL = "wss://api.deepgram.com/v1/listen"

    def __init__(
        self,
        api_key: str,
        audio_chunks: asyncio.Queue[bytes],
        *,
        sample_rate: int = DEEPGRAM_SAMPLE_RATE,
        model: str = DEEPGRAM_MODEL,
        language: str = DEEPGRAM_LANGUAGE,
    ) -> None:
        self._api_key = api_key
        self._audio_chunks = audio_chunks
        self._sample_rate = sample_rate
        self._model = model
        self._language = language

    @property
    def url(self) -> str:
        return (
            f"{self.WS_URL}"
            f"?encoding=linear16&sample_rate={self._sample_rate}"
            f"&channels=1&model={self._model}&language={self._language}"
            f"&interim_results=true&punctuate=true"
        )

    async def acquire(self) -> None:
        if not self._api_key:
            logger.error("[Deepgram] DEEPGRAM_API_KEY not set — cannot recognise speech.")
            raise ResourceAcquisitionFailure("Speech recognition is not configured.", source=self.name)
        # Audio captured before the session started is not part of it.
        while not self._audio_chunks.empty():
            self._audio_chunks.get_nowait()

    async def listen(self) -> AsyncIterator[RecognitionSignal]:
        headers = {"Authorization": f"Token {self._api_key}"}
        try:
            async with websockets.connect(self.url, additional_headers=headers) as ws:
                yield RecognitionStarted()
                send_task = asyncio.create_task(self._send_audio(ws))
                try:
                    async for raw in ws:
                        try:
                            payload = json.loads(raw)
                        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
                            logger.debug("[Deepgram] Skipping undecodable frame: %s", exc)
                            continue
                        signal = parse_deepgram_message(payload)
                        if signal is not None:
                            yield signal
                finally:
                    send_task.cancel()
                    await self._close_stream(ws)
        except websockets.exceptions.ConnectionClosed as exc:
            logger.info("[Deepgram] Stream closed: %s", exc)
        except (OSError, websockets.exceptions.WebSocketException) as exc:
            raise RecognitionStreamError(f"Deepgram connection failed: {exc}") from exc

    def release(self) -> None:
        # Audio still queued after stop belongs to no session.
        while not self._audio_chunks.empty():
            self._audio_chunks.get_nowait()
        logger.info("[Deepgram] Audio stream released.")

    async def _close_stream(self, ws) -> None:
        """Ask Deepgram to flush pending results before the socket closes."""
        try:
            await ws.send(json.dumps({"type": "CloseStream"}))
        except (OSError, websockets.exceptions.WebSocketException) as exc:
            logger.debug("[Deepgram] CloseStream not sent: %s", exc)

    async def _send_audio(self, ws) -> None:
        """Forward queued audio; send KeepAlive while the microphone is quiet."""
        try:
            while True:
                try:
                    chunk = await asyncio.wait_for(
                        self._audio_chunks.get(), timeout=_KEEPALIVE_INTERVAL_S
                    )
                except asyncio.TimeoutError:
                    await ws.send(json.dumps({"type": "KeepAlive"}))
                    continue
                await ws.send(chunk)
        except websockets.exceptions.ConnectionClosed:
            pass
        except Exception as exc:
            logger.warning("[Deepgram] Audio send error: %s", exc)
