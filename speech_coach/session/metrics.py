"""Pure derivation of display metrics from a session's counters."""

from __future__ import annotations

import math

from speech_coach.session.state import MetricsSnapshot, SessionState


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def derive_metrics(state: SessionState, now: float) -> MetricsSnapshot:
    elapsed_minutes = (now - state.started_at) / 60.0

    wpm = 0
    if elapsed_minutes > 0:
        wpm = max(_round_half_up(state.word_count / elapsed_minutes), 0)

    confidence_percent = 0
    if state.confidence_samples > 0:
        mean = state.confidence_total / state.confidence_samples
        confidence_percent = min(max(_round_half_up(mean * 100), 0), 100)

    return MetricsSnapshot(
        wpm=wpm,
        pause_count=state.pause_count,
        confidence_percent=confidence_percent,
    )
