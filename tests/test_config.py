"""Tests for environment-driven CoachSettings.

Run:
    uv run pytest tests/test_config.py -v
"""

from speech_coach.config import CoachSettings
from speech_coach.constants import PAUSE_THRESHOLD_S, PAUSE_TICK_INTERVAL_S

_ENV_KEYS = (
    "RECOGNITION_BACKEND",
    "DEEPGRAM_API_KEY",
    "COACH_PAUSE_THRESHOLD_S",
    "COACH_TICK_INTERVAL_S",
    "COACH_RESTART_DELAY_S",
    "COACH_MIC_GRANT_TIMEOUT_S",
    "OTEL_EXPORTER",
    "OTEL_EXPORTER_OTLP_ENDPOINT",
)


def _clear(monkeypatch) -> None:
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_defaults(monkeypatch):
    _clear(monkeypatch)
    settings = CoachSettings.from_env(load_dotenv_file=False)
    assert settings.recognition_backend == "browser"
    assert settings.pause_threshold == PAUSE_THRESHOLD_S
    assert settings.tick_interval == PAUSE_TICK_INTERVAL_S
    assert settings.deepgram_api_key == ""


def test_overrides(monkeypatch):
    _clear(monkeypatch)
    monkeypatch.setenv("RECOGNITION_BACKEND", "Deepgram")
    monkeypatch.setenv("DEEPGRAM_API_KEY", "dg-key")
    monkeypatch.setenv("COACH_PAUSE_THRESHOLD_S", "1.5")
    monkeypatch.setenv("COACH_TICK_INTERVAL_S", "0.25")

    settings = CoachSettings.from_env(load_dotenv_file=False)

    assert settings.recognition_backend == "deepgram"
    assert settings.deepgram_api_key == "dg-key"
    assert settings.pause_threshold == 1.5
    assert settings.tick_interval == 0.25


def test_invalid_values_fall_back_to_defaults(monkeypatch):
    _clear(monkeypatch)
    monkeypatch.setenv("RECOGNITION_BACKEND", "carrier-pigeon")
    monkeypatch.setenv("COACH_PAUSE_THRESHOLD_S", "soon")
    monkeypatch.setenv("COACH_TICK_INTERVAL_S", "-1")

    settings = CoachSettings.from_env(load_dotenv_file=False)

    assert settings.recognition_backend == "browser"
    assert settings.pause_threshold == PAUSE_THRESHOLD_S
    assert settings.tick_interval == PAUSE_TICK_INTERVAL_S


def test_span_export_settings(monkeypatch):
    _clear(monkeypatch)
    assert CoachSettings.from_env(load_dotenv_file=False).otel_exporter == "console"

    monkeypatch.setenv("OTEL_EXPORTER", "OTLP")
    monkeypatch.setenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://collector:4317")
    settings = CoachSettings.from_env(load_dotenv_file=False)
    assert settings.otel_exporter == "otlp"
    assert settings.otel_endpoint == "http://collector:4317"

    monkeypatch.setenv("OTEL_EXPORTER", "jaeger")
    assert CoachSettings.from_env(load_dotenv_file=False).otel_exporter == "console"
