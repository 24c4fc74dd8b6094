"""Type definitions for the segmentation engine and decode worker messages."""

from dataclasses import dataclass
from enum import Enum
from typing import Any


class VadVerdict(Enum):
    """Classification of a single audio chunk by the voice activity classifier."""
    VOICE = "voice"
    SILENCE = "silence"
    NOISE = "noise"
    ERROR = "error"


class RecordingState(Enum):
    """Whether the engine is currently forwarding an utterance to the worker.

    State Transitions:
    - OFF → ON: first VOICE chunk while idle
    - ON → OFF: trailing silence exceeds the threshold, stream reset or inactivity timeout
    """
    OFF = "off"
    ON = "on"


class VadState(Enum):
    """Value carried by ``vad`` events.

    SILENCE is reported while idle, IDLE for silent chunks inside an utterance
    and VOICE for voiced chunks after the first one of an utterance.
    """
    SILENCE = "silence"
    VOICE = "voice"
    IDLE = "idle"


@dataclass
class RecognitionStats:
    """Timing information attached to a recognized utterance.

    Attributes:
        recog_time: Wall-clock duration of the decoder finalisation in milliseconds
        audio_length: Milliseconds of audio fed for the utterance (rounded)
        model: Identifier of the model that produced the text
        hotword: Hotword tag the result was correlated with, if any
    """
    recog_time: int
    audio_length: int
    model: str
    hotword: str | None = None

    def to_message(self) -> dict[str, Any]:
        message: dict[str, Any] = {
            "recogTime": self.recog_time,
            "audioLength": self.audio_length,
            "model": self.model,
        }
        if self.hotword is not None:
            message["hotword"] = self.hotword
        return message

    @classmethod
    def from_message(cls, message: dict[str, Any]) -> "RecognitionStats":
        return cls(
            recog_time=int(message["recogTime"]),
            audio_length=int(message["audioLength"]),
            model=str(message["model"]),
            hotword=message.get("hotword"),
        )


@dataclass
class RecognitionResult:
    """Non-empty text produced for one utterance.

    Absence of text is represented by ``None``, never by an empty string.
    """
    text: str
    stats: RecognitionStats

    def __post_init__(self):
        if not self.text:
            raise ValueError("RecognitionResult requires non-empty text")


@dataclass
class WorkerReady:
    """The worker has a session ready and accepts audio."""


@dataclass
class NoRecognition:
    """The utterance produced no usable text."""
