"""Browser recognition source — Web Speech API callbacks relayed over WebSocket.

The browser owns the microphone and the ``SpeechRecognition`` object. It
forwards every callback as a JSON message, which the coach session bridge
hands to ``feed()``. Control messages flow the other way through *send*.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

from speech_coach.constants import MIC_GRANT_TIMEOUT_S
from speech_coach.errors import ResourceAcquisitionFailure
from speech_coach.recognition.base import (
    RecognitionEnded,
    RecognitionFault,
    RecognitionSignal,
    RecognitionSource,
    RecognitionStarted,
)
from speech_coach.session.state import RecognitionEvent

logger = logging.getLogger(__name__)

# Inbound message types that belong to this source.
BROWSER_MESSAGE_TYPES = frozenset({
    "mic_granted",
    "mic_denied",
    "recognition_start",
    "recognition_result",
    "recognition_error",
    "recognition_end",
})


class BrowserRecognitionSource(RecognitionSource):
    """Bridges browser-side speech recognition into the session controller.

    Parameters
    ----------
    send : Callable[[dict], Awaitable[None]]
        Coroutine that delivers a JSON control message to the browser.
    grant_timeout : float
        Seconds to wait for the user to answer the microphone prompt.
    """

    name = "browser"

    def __init__(
        self,
        send: Callable[[dict[str, Any]], Awaitable[None]],
        *,
        grant_timeout: float = MIC_GRANT_TIMEOUT_S,
    ) -> None:
        self._send = send
        self._grant_timeout = grant_timeout
        self._grant: asyncio.Future[tuple[bool, str]] | None = None
        self._inbox: asyncio.Queue[RecognitionSignal] = asyncio.Queue()
        self._acquired = False
        self._control_tasks: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # RecognitionSource API
    # ------------------------------------------------------------------

    async def acquire(self) -> None:
        loop = asyncio.get_running_loop()
        self._grant = loop.create_future()
        try:
            await self._send({"type": "control", "action": "acquire_microphone"})
            granted, reason = await asyncio.wait_for(self._grant, timeout=self._grant_timeout)
        except asyncio.TimeoutError as exc:
            raise ResourceAcquisitionFailure(
                "Timed out waiting for microphone permission.", source=self.name
            ) from exc
        finally:
            self._grant = None

        if not granted:
            raise ResourceAcquisitionFailure(
                reason or "Microphone access was denied.", source=self.name
            )
        self._drain_inbox()
        self._acquired = True
        logger.info("[Recognition] Browser microphone granted.")

    async def listen(self) -> AsyncIterator[RecognitionSignal]:
        await self._send_control("start_recognition")
        while True:
            signal = await self._inbox.get()
            yield signal
            if isinstance(signal, RecognitionEnded):
                return

    def release(self) -> None:
        if not self._acquired:
            return
        self._acquired = False
        self._drain_inbox()
        task = asyncio.get_running_loop().create_task(self._send_control("stop_recognition"))
        self._control_tasks.add(task)
        task.add_done_callback(self._control_tasks.discard)
        logger.info("[Recognition] Browser recognition released.")

    # ------------------------------------------------------------------
    # Inbound messages
    # ------------------------------------------------------------------

    def feed(self, message: dict[str, Any]) -> None:
        """Route one browser message; raises ``ValueError`` if it is malformed."""
        kind = message.get("type")

        if kind == "mic_granted":
            self._resolve_grant(True, "")
        elif kind == "mic_denied":
            self._resolve_grant(False, str(message.get("reason") or ""))
        elif kind == "recognition_start":
            self._inbox.put_nowait(RecognitionStarted())
        elif kind == "recognition_result":
            self._inbox.put_nowait(RecognitionEvent.from_dict(message))
        elif kind == "recognition_error":
            self._inbox.put_nowait(
                RecognitionFault(
                    code=str(message.get("error") or "unknown"),
                    message=str(message.get("message") or ""),
                )
            )
        elif kind == "recognition_end":
            self._inbox.put_nowait(RecognitionEnded(expected=bool(message.get("expected", False))))
        else:
            raise ValueError(f"Unknown browser message type: {kind!r}")

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _send_control(self, action: str) -> None:
        """Best-effort control message; the page may already be gone."""
        try:
            await self._send({"type": "control", "action": action})
        except Exception as exc:
            logger.debug("[Recognition] Failed to send %s: %s", action, exc)

    def _resolve_grant(self, granted: bool, reason: str) -> None:
        if self._grant is None or self._grant.done():
            logger.debug("[Recognition] Ignoring unsolicited permission answer.")
            return
        self._grant.set_result((granted, reason))

    def _drain_inbox(self) -> None:
        while not self._inbox.empty():
            self._inbox.get_nowait()
