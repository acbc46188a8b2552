"""Speech Coach — live speaking-rate, pause and confidence analytics."""

__version__ = "0.1.0"
