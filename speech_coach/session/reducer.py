"""Fold incremental ASR events into the session's word and confidence counters."""

from __future__ import annotations

import logging

from speech_coach.session.state import RecognitionEvent, SessionState

logger = logging.getLogger(__name__)


def apply_recognition_event(state: SessionState, event: RecognitionEvent, now: float) -> SessionState:
    """Apply the new segments of *event* to *state* and return it.

    Segments before ``event.result_index`` were folded in by earlier events
    and are skipped. Interim segments only refresh ``last_speech_at``; final
    segments add their whitespace-delimited words and one confidence sample.
    """
    for segment in event.new_segments():
        if segment.transcript.strip():
            state.last_speech_at = now

        if not segment.is_final:
            continue

        words = len(segment.transcript.split())
        state.word_count += words
        state.confidence_total += segment.confidence
        state.confidence_samples += 1
        logger.debug(
            "[Reducer] Final segment: +%d words (total=%d, confidence=%.2f)",
            words,
            state.word_count,
            segment.confidence,
        )

    return state
