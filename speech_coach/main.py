"""FastAPI app — health check + WebSocket speech-coach bridge.

Data flow:
  1. The page sends ``start``; the recognition source acquires the microphone
     (browser Web Speech API, or Deepgram fed with PCM-16 frames).
  2. Recognition events are folded into the session's counters; a 500 ms
     timer detects pauses.
  3. Every mutation pushes a ``metrics`` message (wpm, pauses, confidence).
  4. ``stop`` freezes and sends the ``report``; ``reset`` readies a new session.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, WebSocket

from speech_coach import __version__
from speech_coach.config import CoachSettings
from speech_coach.pipeline.coach_session import run_coach_session
from speech_coach.telemetry import init_telemetry

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Read settings and set up tracing once per process."""
    settings = CoachSettings.from_env()
    init_telemetry(settings.otel_exporter, settings.otel_endpoint)
    app.state.settings = settings
    logger.info("Speech coach ready — recognition backend: %s", app.state.settings.recognition_backend)
    yield


app = FastAPI(title="Speech Coach", version=__version__, lifespan=lifespan)


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}


@app.websocket("/ws/coach-stream")
async def coach_stream(websocket: WebSocket) -> None:
    await websocket.accept()
    settings = getattr(websocket.app.state, "settings", None) or CoachSettings.from_env()
    await run_coach_session(websocket, settings)


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="[%(asctime)s] %(levelname)s %(name)s - %(message)s")
    uvicorn.run("speech_coach.main:app", host="127.0.0.1", port=8000)
