"""Runtime configuration for the speech coach, read from the environment.

``.env`` in the working directory is loaded first (python-dotenv) so local
development can keep API keys out of the shell profile. Values already in
``os.environ`` win.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

from speech_coach.constants import (
    BACKEND_BROWSER,
    MIC_GRANT_TIMEOUT_S,
    OTEL_DEFAULT_ENDPOINT,
    OTEL_EXPORTER_CONSOLE,
    PAUSE_THRESHOLD_S,
    PAUSE_TICK_INTERVAL_S,
    RESTART_DELAY_S,
    SUPPORTED_BACKENDS,
    SUPPORTED_OTEL_EXPORTERS,
)

logger = logging.getLogger(__name__)


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "")
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("[Config] %s=%r is not a number — using %s.", name, raw, default)
        return default
    if value <= 0:
        logger.warning("[Config] %s must be positive — using %s.", name, default)
        return default
    return value


@dataclass(frozen=True)
class CoachSettings:
    """All tunables for one coach process."""

    recognition_backend: str = BACKEND_BROWSER
    deepgram_api_key: str = ""
    pause_threshold: float = PAUSE_THRESHOLD_S
    tick_interval: float = PAUSE_TICK_INTERVAL_S
    restart_delay: float = RESTART_DELAY_S
    mic_grant_timeout: float = MIC_GRANT_TIMEOUT_S
    otel_exporter: str = OTEL_EXPORTER_CONSOLE
    otel_endpoint: str = OTEL_DEFAULT_ENDPOINT

    @classmethod
    def from_env(cls, *, load_dotenv_file: bool = True) -> "CoachSettings":
        if load_dotenv_file:
            load_dotenv()

        backend = os.environ.get("RECOGNITION_BACKEND", BACKEND_BROWSER).strip().lower()
        if backend not in SUPPORTED_BACKENDS:
            logger.warning(
                "[Config] Unknown RECOGNITION_BACKEND=%r — using %s.", backend, BACKEND_BROWSER
            )
            backend = BACKEND_BROWSER

        exporter = os.environ.get("OTEL_EXPORTER", OTEL_EXPORTER_CONSOLE).strip().lower()
        if exporter not in SUPPORTED_OTEL_EXPORTERS:
            logger.warning(
                "[Config] Unknown OTEL_EXPORTER=%r — using %s.", exporter, OTEL_EXPORTER_CONSOLE
            )
            exporter = OTEL_EXPORTER_CONSOLE

        settings = cls(
            recognition_backend=backend,
            deepgram_api_key=os.environ.get("DEEPGRAM_API_KEY", ""),
            pause_threshold=_env_float("COACH_PAUSE_THRESHOLD_S", PAUSE_THRESHOLD_S),
            tick_interval=_env_float("COACH_TICK_INTERVAL_S", PAUSE_TICK_INTERVAL_S),
            restart_delay=_env_float("COACH_RESTART_DELAY_S", RESTART_DELAY_S),
            mic_grant_timeout=_env_float("COACH_MIC_GRANT_TIMEOUT_S", MIC_GRANT_TIMEOUT_S),
            otel_exporter=exporter,
            otel_endpoint=os.environ.get("OTEL_EXPORTER_OTLP_ENDPOINT") or OTEL_DEFAULT_ENDPOINT,
        )
        logger.info(
            "[Config] backend=%s pause_threshold=%.2fs tick=%.2fs",
            settings.recognition_backend,
            settings.pause_threshold,
            settings.tick_interval,
        )
        return settings
