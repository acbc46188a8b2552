"""Exceptions raised inside a session and the error messages sent to the page.

Error codes
-----------
E_MIC_UNAVAILABLE     Microphone / recognition resources denied or missing.
                      Fatal for the start attempt; the user must fix access.
E_RECOGNITION_FAILED  The ASR engine reported an error mid-session. The
                      session keeps listening.
E_BAD_MESSAGE         A client message could not be parsed or routed.
E_SESSION_STATE       A command arrived in a state that cannot accept it.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from fastapi import WebSocket

if TYPE_CHECKING:
    from speech_coach.recognition.base import RecognitionFault

logger = logging.getLogger(__name__)


class ErrorCode(str, enum.Enum):
    E_MIC_UNAVAILABLE = "E_MIC_UNAVAILABLE"
    E_RECOGNITION_FAILED = "E_RECOGNITION_FAILED"
    E_BAD_MESSAGE = "E_BAD_MESSAGE"
    E_SESSION_STATE = "E_SESSION_STATE"

    @property
    def recoverable(self) -> bool:
        return self is not ErrorCode.E_MIC_UNAVAILABLE


class ResourceAcquisitionFailure(Exception):
    """Raised by a recognition source when it cannot obtain its device or service.

    ``start()`` aborts on this error and the controller stays idle.
    """

    def __init__(self, message: str, *, source: str = "") -> None:
        super().__init__(message)
        self.source = source


class RecognitionStreamError(Exception):
    """Transport-level failure inside a recognition subscription.

    The controller treats it exactly like the stream ending on its own.
    """


@dataclass(frozen=True)
class CoachError:
    """One ``{"type": "error"}`` message for the practice page."""

    code: ErrorCode
    message: str
    session_id: str = ""
    details: dict[str, Any] | None = None

    @property
    def recoverable(self) -> bool:
        return self.code.recoverable

    @classmethod
    def mic_unavailable(cls, exc: ResourceAcquisitionFailure, session_id: str) -> "CoachError":
        return cls(
            ErrorCode.E_MIC_UNAVAILABLE,
            str(exc) or "Microphone is unavailable.",
            session_id,
            {"source": exc.source} if exc.source else None,
        )

    @classmethod
    def recognition_failed(cls, fault: "RecognitionFault", session_id: str) -> "CoachError":
        return cls(
            ErrorCode.E_RECOGNITION_FAILED,
            fault.message or f"Speech recognition error: {fault.code}",
            session_id,
            {"engine_code": fault.code},
        )

    @classmethod
    def bad_message(cls, reason: str, session_id: str) -> "CoachError":
        return cls(ErrorCode.E_BAD_MESSAGE, reason, session_id)

    @classmethod
    def session_state(cls, reason: str, session_id: str, status: str) -> "CoachError":
        return cls(ErrorCode.E_SESSION_STATE, reason, session_id, {"status": status})

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "type": "error",
            "code": self.code.value,
            "message": self.message,
            "recoverable": self.recoverable,
            "session_id": self.session_id,
        }
        if self.details:
            d["details"] = self.details
        return d


async def send_error(websocket: WebSocket, error: CoachError) -> bool:
    """Send *error* to the page; return False if the socket is already gone."""
    try:
        await websocket.send_json(error.to_dict())
    except Exception as exc:
        logger.debug("[CoachError] %s not delivered: %s", error.code.value, exc)
        return False
    log = logger.warning if not error.recoverable else logger.info
    log("[CoachError] %s %s (session=%s)", error.code.value, error.message, error.session_id or "-")
    return True
