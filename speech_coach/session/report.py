"""End-of-session report generation."""

from __future__ import annotations

from speech_coach.session.metrics import derive_metrics
from speech_coach.session.state import ReportSnapshot, SessionState


def build_report(state: SessionState, now: float) -> ReportSnapshot:
    """Freeze the session's metrics and duration as of *now*.

    Called once, at the ``listening → stopped`` transition.
    """
    return ReportSnapshot(
        duration_seconds=max(now - state.started_at, 0.0),
        metrics=derive_metrics(state, now),
    )
