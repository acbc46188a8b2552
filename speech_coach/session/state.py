"""SessionState and the value types flowing in and out of a practice session."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any


class SessionStatus(str, enum.Enum):
    IDLE = "idle"
    LISTENING = "listening"
    STOPPED = "stopped"


def _clamp_unit(value: float) -> float:
    return min(max(value, 0.0), 1.0)


@dataclass(frozen=True)
class ResultSegment:
    """One recognition alternative, interim or final."""

    is_final: bool
    transcript: str
    confidence: float = 0.0

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "ResultSegment":
        """Build from browser (camelCase) or server (snake_case) JSON."""
        is_final = raw.get("isFinal", raw.get("is_final", False))
        try:
            confidence = float(raw.get("confidence") or 0.0)
        except (TypeError, ValueError):
            confidence = 0.0
        return cls(
            is_final=bool(is_final),
            transcript=str(raw.get("transcript") or ""),
            confidence=_clamp_unit(confidence),
        )


@dataclass(frozen=True)
class RecognitionEvent:
    """A single ASR callback.

    ``results`` is the engine's whole result list for the current recognizer
    run; only entries at ``result_index`` or later are new.
    """

    result_index: int
    results: tuple[ResultSegment, ...] = ()

    def new_segments(self) -> tuple[ResultSegment, ...]:
        return self.results[max(self.result_index, 0):]

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "RecognitionEvent":
        index = raw.get("resultIndex", raw.get("result_index", 0))
        try:
            result_index = int(index)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Invalid result index: {index!r}") from exc
        results = raw.get("results") or []
        if not isinstance(results, list):
            raise ValueError("'results' must be a list")
        return cls(
            result_index=result_index,
            results=tuple(ResultSegment.from_dict(r) for r in results if isinstance(r, dict)),
        )


@dataclass
class SessionState:
    """All mutable analytics for one start/stop cycle.

    Fields
    ------
    started_at : clock reading at the ``idle → listening`` transition.
    last_speech_at : clock reading of the last event with non-empty text.
    word_count : words from finalized segments only.
    confidence_total / confidence_samples : running-mean accumulators.
    pause_count : silence episodes detected so far.
    pause_active : True while the current silence episode is already counted.
    """

    session_id: str
    started_at: float
    last_speech_at: float
    word_count: int = 0
    confidence_total: float = 0.0
    confidence_samples: int = 0
    pause_count: int = 0
    pause_active: bool = False

    @classmethod
    def begin(cls, session_id: str, now: float) -> "SessionState":
        return cls(session_id=session_id, started_at=now, last_speech_at=now)


@dataclass(frozen=True)
class MetricsSnapshot:
    wpm: int = 0
    pause_count: int = 0
    confidence_percent: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "wpm": self.wpm,
            "pause_count": self.pause_count,
            "confidence_percent": self.confidence_percent,
        }


@dataclass(frozen=True)
class ReportSnapshot:
    """End-of-session report, frozen at the moment the user stopped."""

    duration_seconds: float
    metrics: MetricsSnapshot = field(default_factory=MetricsSnapshot)

    def to_dict(self) -> dict[str, Any]:
        return {"duration_seconds": round(self.duration_seconds, 3), **self.metrics.to_dict()}
