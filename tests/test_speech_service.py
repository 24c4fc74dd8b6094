# tests/test_speech_service.py
"""Tests for SpeechService wiring with a fake worker factory and classifier."""
import io
import time
import pytest
from unittest.mock import Mock

from speechstream.SpeechConfig import SpeechConfig
from speechstream.SpeechService import SpeechService
from speechstream.errors import WorkerUnavailable
from speechstream.types import RecordingState, VadVerdict


@pytest.fixture
def worker():
    return Mock()


@pytest.fixture
def worker_factory(worker):
    return Mock(return_value=worker)


@pytest.fixture
def classifier():
    classifier = Mock()
    classifier.classify.return_value = VadVerdict.VOICE
    return classifier


@pytest.fixture
def service(worker_factory, classifier):
    service = SpeechService("onnx-asr:test", SpeechConfig(), classifier=classifier, worker_factory=worker_factory)
    yield service
    service.engine.stop()


def wait_for(predicate, timeout=2.0):
    deadline = time.time() + timeout
    while not predicate() and time.time() < deadline:
        time.sleep(0.01)
    return predicate()


def test_worker_created_from_config(service, worker_factory):
    kwargs = worker_factory.call_args.kwargs

    assert kwargs['model_name'] == "nemo-parakeet-tdt-0.6b-v3"
    assert kwargs['model_path'] == "./models/parakeet"
    assert kwargs['debug_process'] is False
    assert kwargs['sample_rate'] == 16000
    assert callable(kwargs['on_message']) and callable(kwargs['on_exit'])


def test_connect_starts_engine_then_worker(service, worker):
    service.connect()

    worker.start.assert_called_once()
    assert service.engine.is_running


def test_ready_message_emits_connect(service, worker_factory):
    connect_handler = Mock()
    service.on('connect', connect_handler)
    service.connect()

    worker_factory.call_args.kwargs['on_message']({"ready": True})

    assert wait_for(lambda: service.connected)
    connect_handler.assert_called_once_with(True)


def test_stream_data_reaches_worker(service, worker):
    service.connect()

    service.stream_data(b"\x00\x01" * 320)

    assert wait_for(lambda: worker.send_audio.called)
    assert service.state['recording'] == RecordingState.ON


def test_recognition_delivered_to_subscriber(service, worker_factory):
    recognize = Mock()
    service.on('recognize', recognize)
    service.connect()

    worker_factory.call_args.kwargs['on_message']({
        "recognize": {"text": "hello", "stats": {"recogTime": 5, "audioLength": 100, "model": "m"}}
    })

    assert wait_for(lambda: recognize.called)
    assert recognize.call_args.args[0] == "hello"


def test_stream_reset_reaches_worker(service, worker):
    service.connect()

    service.stream_reset()

    assert wait_for(lambda: worker.reset_stream.called)


def test_worker_exit_disconnects(service, worker_factory, worker):
    service.connect()
    worker_factory.call_args.kwargs['on_message']({"ready": True})
    assert wait_for(lambda: service.connected)

    worker_factory.call_args.kwargs['on_exit'](1)

    assert wait_for(lambda: not service.connected)
    assert wait_for(lambda: worker.reset_stream.called)


def test_destroy_stops_worker_and_engine(service, worker):
    connect_handler = Mock()
    service.on('connect', connect_handler)
    service.connect()

    service.destroy()

    worker.destroy.assert_called_once()
    assert not service.engine.is_running
    connect_handler.assert_called_with(False)


def test_destroy_tolerates_unavailable_worker(service, worker):
    worker.destroy.side_effect = WorkerUnavailable("gone")
    service.connect()

    service.destroy()

    assert service.connected is False


def test_state_snapshot(service):
    state = service.state

    assert state == {
        "id": "onnx-asr:test",
        "connected": False,
        "recording": RecordingState.OFF,
        "vad": None,
        "hotword": None,
        "modelName": "nemo-parakeet-tdt-0.6b-v3",
    }


def test_debug_attaches_console_trace(worker_factory, classifier):
    service = SpeechService("onnx-asr:test", SpeechConfig(debug=True), classifier=classifier,
                            worker_factory=worker_factory)
    service._trace.stream = io.StringIO()

    assert service.emitter.handler_count('recording') == 1
    assert service.emitter.handler_count('vad') == 1

    service.destroy()
    assert service.emitter.handler_count('recording') == 0
