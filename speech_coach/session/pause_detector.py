"""Edge-triggered pause detection driven by a fixed-interval timer.

Two states live in ``SessionState.pause_active``: Speaking (False) and
Paused (True). Only the Speaking → Paused edge counts a pause, so one long
silence is one episode however many ticks it spans.
"""

from __future__ import annotations

import logging

from speech_coach.constants import PAUSE_THRESHOLD_S
from speech_coach.session.state import SessionState

logger = logging.getLogger(__name__)


def detect_pause(state: SessionState, now: float, threshold: float = PAUSE_THRESHOLD_S) -> SessionState:
    """Advance the Speaking/Paused machine for one tick and return *state*."""
    silence = now - state.last_speech_at

    if silence > threshold:
        if not state.pause_active:
            state.pause_count += 1
            state.pause_active = True
            logger.debug("[Pause] Pause #%d after %.2fs of silence.", state.pause_count, silence)
    elif state.pause_active:
        state.pause_active = False
        logger.debug("[Pause] Speech resumed.")

    return state
