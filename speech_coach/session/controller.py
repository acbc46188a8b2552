"""SessionController — lifecycle owner for one practice session at a time.

    idle ──start()──▶ listening ──stop()──▶ stopped ──reset()──▶ idle

While listening, two asyncio tasks feed the session: the recognition
subscription (folding events through the reducer) and the pause timer
(ticking the pause detector). Every mutation runs to completion on the event
loop without awaiting, so no locks are needed; ``stop()`` cancels both tasks
in the same synchronous step that leaves ``listening``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

from speech_coach.constants import PAUSE_THRESHOLD_S, PAUSE_TICK_INTERVAL_S, RESTART_DELAY_S
from speech_coach.errors import RecognitionStreamError, ResourceAcquisitionFailure
from speech_coach.recognition.base import (
    RecognitionEnded,
    RecognitionFault,
    RecognitionSource,
    RecognitionStarted,
)
from speech_coach.session.metrics import derive_metrics
from speech_coach.session.pause_detector import detect_pause
from speech_coach.session.reducer import apply_recognition_event
from speech_coach.session.report import build_report
from speech_coach.session.state import (
    MetricsSnapshot,
    RecognitionEvent,
    ReportSnapshot,
    SessionState,
    SessionStatus,
)
from speech_coach.telemetry import record_report, session_span, trace_id
from speech_coach.utils import generate_session_id

logger = logging.getLogger(__name__)


class SessionController:
    """Owns ``SessionState`` and drives it from a recognition source and a timer.

    Parameters
    ----------
    source : RecognitionSource
        External ASR stream; acquired on start, released on stop.
    clock : Callable[[], float]
        Monotonic seconds. Injected so tests can script time.
    pause_threshold : float
        Silence (seconds) above which a pause episode begins.
    tick_interval : float
        Pause-detector polling period in seconds.
    restart_delay : float
        Wait before resubscribing after the stream ends unexpectedly.
    on_update : async callback, optional
        Receives a fresh ``MetricsSnapshot`` after every mutation.
    on_error : async callback, optional
        Receives mid-session ``RecognitionFault``s.
    """

    def __init__(
        self,
        source: RecognitionSource,
        *,
        clock: Callable[[], float] = time.monotonic,
        pause_threshold: float = PAUSE_THRESHOLD_S,
        tick_interval: float = PAUSE_TICK_INTERVAL_S,
        restart_delay: float = RESTART_DELAY_S,
        on_update: Callable[[MetricsSnapshot], Awaitable[None]] | None = None,
        on_error: Callable[[RecognitionFault], Awaitable[None]] | None = None,
    ) -> None:
        self._source = source
        self._clock = clock
        self._pause_threshold = pause_threshold
        self._tick_interval = tick_interval
        self._restart_delay = restart_delay
        self.on_update = on_update
        self.on_error = on_error

        self._status = SessionStatus.IDLE
        self._state: SessionState | None = None
        self._report: ReportSnapshot | None = None
        self._acquiring = False
        self._restart_count = 0
        self._timer_task: asyncio.Task | None = None
        self._recognition_task: asyncio.Task | None = None

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def state(self) -> SessionState | None:
        return self._state

    @property
    def report(self) -> ReportSnapshot | None:
        return self._report

    @property
    def session_id(self) -> str:
        return self._state.session_id if self._state is not None else ""

    @property
    def restart_count(self) -> int:
        """Resubscriptions performed during the current (or last) session."""
        return self._restart_count

    def metrics(self) -> MetricsSnapshot:
        if self._status is SessionStatus.LISTENING and self._state is not None:
            return derive_metrics(self._state, self._clock())
        if self._status is SessionStatus.STOPPED and self._report is not None:
            return self._report.metrics
        return MetricsSnapshot()

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def start(self) -> str:
        """Acquire the source and begin listening; return the new session id.

        Raises ``ResourceAcquisitionFailure`` (leaving the controller idle)
        when the source cannot be acquired.
        """
        if self._status is not SessionStatus.IDLE or self._acquiring:
            logger.info("[Session] start() ignored — status=%s acquiring=%s", self._status.value, self._acquiring)
            return self.session_id

        with session_span("coach.session.start", source=self._source.name) as span:
            self._acquiring = True
            try:
                await self._source.acquire()
            except ResourceAcquisitionFailure as exc:
                logger.warning("[Session] Could not acquire %s source: %s", self._source.name, exc)
                raise
            finally:
                self._acquiring = False

            session_id = generate_session_id()
            span.set_attribute("coach.session_id", session_id)
            self._state = SessionState.begin(session_id, self._clock())
            self._report = None
            self._restart_count = 0
            self._status = SessionStatus.LISTENING

            self._timer_task = asyncio.create_task(self._run_pause_timer(session_id))
            self._recognition_task = asyncio.create_task(self._run_recognition(session_id))
            logger.info("[Session] %s listening via %s (trace=%s)", session_id, self._source.name, trace_id(span))
            return session_id

    def stop(self) -> ReportSnapshot | None:
        """Leave ``listening`` and freeze the report. No-op in any other state."""
        if self._status is not SessionStatus.LISTENING or self._state is None:
            return self._report

        with session_span(
            "coach.session.stop", source=self._source.name, session_id=self._state.session_id
        ) as span:
            now = self._clock()
            self._status = SessionStatus.STOPPED

            for task in (self._recognition_task, self._timer_task):
                if task is not None:
                    task.cancel()
            self._recognition_task = None
            self._timer_task = None
            self._source.release()

            self._report = build_report(self._state, now)
            record_report(span, self._report)
            logger.info(
                "[Session] %s stopped after %.1fs: %s (restarts=%d)",
                self._state.session_id,
                self._report.duration_seconds,
                self._report.metrics,
                self._restart_count,
            )
            self._state = None
            return self._report

    def reset(self) -> None:
        """Discard the last report and return to ``idle``."""
        if self._status is not SessionStatus.STOPPED:
            logger.debug("[Session] reset() ignored — status=%s", self._status.value)
            return
        self._report = None
        self._status = SessionStatus.IDLE
        logger.info("[Session] Reset — ready for a new session.")

    # ------------------------------------------------------------------
    # Callbacks (guarded: dropped unless listening)
    # ------------------------------------------------------------------

    async def handle_event(self, event: RecognitionEvent) -> None:
        if not self._is_live():
            return
        apply_recognition_event(self._state, event, self._clock())
        await self._push_update()

    async def handle_tick(self) -> None:
        if not self._is_live():
            return
        detect_pause(self._state, self._clock(), self._pause_threshold)
        await self._push_update()

    async def handle_error(self, fault: RecognitionFault) -> None:
        if not self._is_live():
            return
        logger.warning("[Session] Recognition error %s: %s", fault.code, fault.message)
        if self.on_error is not None:
            await self.on_error(fault)

    # ------------------------------------------------------------------
    # Internal tasks
    # ------------------------------------------------------------------

    def _is_live(self, session_id: str | None = None) -> bool:
        if self._status is not SessionStatus.LISTENING or self._state is None:
            return False
        return session_id is None or self._state.session_id == session_id

    async def _push_update(self) -> None:
        if self.on_update is not None:
            await self.on_update(self.metrics())

    async def _run_pause_timer(self, session_id: str) -> None:
        while True:
            await asyncio.sleep(self._tick_interval)
            if not self._is_live(session_id):
                return
            await self.handle_tick()

    async def _run_recognition(self, session_id: str) -> None:
        """Consume subscriptions until the session ends, resubscribing on termination."""
        while self._is_live(session_id):
            try:
                async for signal in self._source.listen():
                    if not self._is_live(session_id):
                        return
                    if isinstance(signal, RecognitionEvent):
                        await self.handle_event(signal)
                    elif isinstance(signal, RecognitionFault):
                        await self.handle_error(signal)
                    elif isinstance(signal, RecognitionStarted):
                        logger.debug("[Session] %s recognition started.", session_id)
                    elif isinstance(signal, RecognitionEnded):
                        logger.info("[Session] %s recognition ended (expected=%s).", session_id, signal.expected)
                        break
            except RecognitionStreamError as exc:
                logger.warning("[Session] %s recognition stream failed: %s", session_id, exc)
            except Exception as exc:
                logger.exception("[Session] %s recognition subscription crashed: %s", session_id, exc)

            # Any end while still listening is a termination the user did not ask for.
            if not self._is_live(session_id):
                return

            self._restart_count += 1
            logger.info(
                "[Session] %s recognition ended unexpectedly — resubscribing (restart #%d).",
                session_id,
                self._restart_count,
            )
            await asyncio.sleep(self._restart_delay)
