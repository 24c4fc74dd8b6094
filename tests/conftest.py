# tests/conftest.py
import pytest
from unittest.mock import Mock

from speechstream.EventEmitter import EventEmitter
from speechstream.SpeechConfig import SpeechConfig
from speechstream.engine.SegmentationEngine import SegmentationEngine

ENGINE_EVENTS = ('connect', 'recording', 'vad', 'recognize', 'hotword', 'no-recognition')


class FakeClock:
    """Millisecond clock advanced explicitly by tests."""

    def __init__(self, now: float = 0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


class EventRecorder:
    """Records every engine event as (name, args) in emission order."""

    def __init__(self, emitter: EventEmitter):
        self.events = []
        for name in ENGINE_EVENTS:
            emitter.on(name, self._handler(name))

    def _handler(self, name):
        def record(*args):
            self.events.append((name, args))
        return record

    def of(self, name):
        """Argument tuples of every emitted event with this name."""
        return [args for event, args in self.events if event == name]

    def names(self):
        return [event for event, _ in self.events]

    def clear(self):
        self.events.clear()


@pytest.fixture
def speech_config():
    """Engine configuration with the documented defaults and a small queue."""
    return SpeechConfig(
        silence_threshold=200,
        buffer_size=3,
        inactivity_timeout=1000,
        queue_size=10,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mock_classifier():
    """Mock VoiceActivityClassifier; tests set classify.return_value / side_effect."""
    return Mock()


@pytest.fixture
def mock_worker():
    """Mock WorkerProcess handle (send_audio, end_stream, reset_stream)."""
    return Mock()


@pytest.fixture
def emitter():
    return EventEmitter()


@pytest.fixture
def recorder(emitter):
    return EventRecorder(emitter)


@pytest.fixture
def engine(mock_classifier, mock_worker, emitter, recorder, speech_config, clock):
    """SegmentationEngine driven synchronously from the test thread."""
    return SegmentationEngine(
        classifier=mock_classifier,
        worker=mock_worker,
        emitter=emitter,
        config=speech_config,
        clock=clock,
    )
