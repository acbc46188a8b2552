"""RecognitionSource — the contract between a session and its ASR engine.

A source has three phases:

1. ``acquire()`` — obtain the microphone or the remote recognizer. This is
   the only awaited step of ``SessionController.start()``; failure raises
   ``ResourceAcquisitionFailure`` and the session never begins.
2. ``listen()`` — one subscription, yielding lifecycle signals and
   ``RecognitionEvent``s in delivery order. The iterator finishing (or a
   ``RecognitionEnded(expected=False)``) means the stream terminated; the
   controller calls ``listen()`` again while the session is still live.
3. ``release()`` — synchronous teardown, called from ``stop()``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Union

from speech_coach.session.state import RecognitionEvent


@dataclass(frozen=True)
class RecognitionStarted:
    """The engine began capturing audio (``onstart``)."""


@dataclass(frozen=True)
class RecognitionEnded:
    """The engine stopped delivering results (``onend``)."""

    expected: bool = False


@dataclass(frozen=True)
class RecognitionFault:
    """Non-fatal engine error (``onerror``), e.g. ``no-speech`` or ``network``."""

    code: str
    message: str = ""


RecognitionSignal = Union[RecognitionStarted, RecognitionEvent, RecognitionFault, RecognitionEnded]


class RecognitionSource(ABC):
    name: str = "base"

    @abstractmethod
    async def acquire(self) -> None:
        """Obtain the resources needed to recognise speech."""

    @abstractmethod
    def listen(self) -> AsyncIterator[RecognitionSignal]:
        """Open a fresh subscription to the recognition stream."""

    @abstractmethod
    def release(self) -> None:
        """Give back everything ``acquire()`` obtained."""
