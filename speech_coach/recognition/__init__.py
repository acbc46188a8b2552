"""Recognition sources — the external ASR streams a session subscribes to."""

from speech_coach.recognition.base import (
    RecognitionEnded,
    RecognitionFault,
    RecognitionSignal,
    RecognitionSource,
    RecognitionStarted,
)

__all__ = [
    "RecognitionEnded",
    "RecognitionFault",
    "RecognitionSignal",
    "RecognitionSource",
    "RecognitionStarted",
]
