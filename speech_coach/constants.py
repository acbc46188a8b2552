"""Centralized constants for the speech coach engine.

All thresholds and timeout values should be defined here for easy maintenance.
"""

# Pause detection (seconds)
PAUSE_THRESHOLD_S: float = 2.0  # silence longer than this starts a pause episode
PAUSE_TICK_INTERVAL_S: float = 0.5  # detector polling period

# Recognition stream recovery (seconds)
RESTART_DELAY_S: float = 0.25  # wait before resubscribing after an unexpected end

# Browser handshake (seconds)
MIC_GRANT_TIMEOUT_S: float = 15.0  # user has this long to answer the permission prompt

# Deepgram streaming
DEEPGRAM_SAMPLE_RATE: int = 16_000
DEEPGRAM_MODEL: str = "nova-2"
DEEPGRAM_LANGUAGE: str = "en-US"

# Recognition backends
BACKEND_BROWSER: str = "browser"
BACKEND_DEEPGRAM: str = "deepgram"
SUPPORTED_BACKENDS: set[str] = {BACKEND_BROWSER, BACKEND_DEEPGRAM}

# Span export
OTEL_EXPORTER_CONSOLE: str = "console"
OTEL_EXPORTER_OTLP: str = "otlp"
OTEL_EXPORTER_NONE: str = "none"
SUPPORTED_OTEL_EXPORTERS: set[str] = {OTEL_EXPORTER_CONSOLE, OTEL_EXPORTER_OTLP, OTEL_EXPORTER_NONE}
OTEL_DEFAULT_ENDPOINT: str = "http://localhost:4317"
