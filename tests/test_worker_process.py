# tests/test_worker_process.py
"""Tests for the parent-side WorkerProcess handle with a mocked child process."""
import pytest
from unittest.mock import Mock, MagicMock, patch

from speechstream.errors import WorkerUnavailable
from speechstream.worker import protocol
from speechstream.worker.WorkerProcess import WorkerProcess, run_worker


@pytest.fixture
def callbacks():
    return Mock(), Mock()


@pytest.fixture
def handle(callbacks):
    on_message, on_exit = callbacks
    return WorkerProcess(
        model_name="nemo-parakeet-tdt-0.6b-v3",
        model_path="./models/parakeet",
        on_message=on_message,
        on_exit=on_exit,
    )


def connect_mocks(handle, messages=()):
    """Attach a fake pipe end that yields messages, then EOF."""
    conn = Mock()
    conn.recv.side_effect = list(messages) + [EOFError()]
    process = Mock()
    process.exitcode = 1
    process.is_alive.return_value = False
    handle._conn = conn
    handle._process = process
    return conn, process


def test_send_before_start_raises(handle):
    with pytest.raises(WorkerUnavailable):
        handle.send_audio(b"\x00\x00")


def test_control_messages(handle):
    conn, _ = connect_mocks(handle)

    handle.send_audio(bytearray(b"\x01\x00"))
    handle.end_stream()
    handle.reset_stream()

    assert [c.args[0] for c in conn.send.call_args_list] == [
        b"\x01\x00", protocol.STREAM_END, protocol.STREAM_RESET,
    ]


@pytest.mark.parametrize("error", [BrokenPipeError("broken"), OSError("closed"), ValueError("closed handle")])
def test_send_failure_becomes_worker_unavailable(handle, error):
    conn, _ = connect_mocks(handle)
    conn.send.side_effect = error

    with pytest.raises(WorkerUnavailable):
        handle.end_stream()


def test_read_loop_forwards_messages_then_reports_exit(handle, callbacks):
    on_message, on_exit = callbacks
    connect_mocks(handle, [{"ready": True}, {"noRecognition": True}])

    handle._read_loop()

    assert [c.args[0] for c in on_message.call_args_list] == [{"ready": True}, {"noRecognition": True}]
    on_exit.assert_called_once_with(1)


def test_read_loop_survives_handler_error(handle, callbacks):
    on_message, on_exit = callbacks
    on_message.side_effect = [RuntimeError("handler bug"), None]
    connect_mocks(handle, [{"ready": True}, {"noRecognition": True}])

    handle._read_loop()

    assert on_message.call_count == 2
    on_exit.assert_called_once()


def test_no_exit_report_when_destroying(handle, callbacks):
    _, on_exit = callbacks
    connect_mocks(handle)
    handle._destroying = True

    handle._read_loop()

    on_exit.assert_not_called()


def test_destroy_sends_destroy_and_joins(handle):
    conn, process = connect_mocks(handle)

    handle.destroy(timeout=0.1)

    conn.send.assert_called_once_with(protocol.DESTROY)
    process.join.assert_called_with(timeout=0.1)
    process.terminate.assert_not_called()
    conn.close.assert_called_once()


def test_destroy_terminates_stuck_worker(handle):
    conn, process = connect_mocks(handle)
    process.is_alive.return_value = True

    handle.destroy(timeout=0.1)

    process.terminate.assert_called_once()


def test_destroy_tolerates_dead_pipe(handle):
    conn, process = connect_mocks(handle)
    conn.send.side_effect = BrokenPipeError("broken")

    handle.destroy(timeout=0.1)

    process.join.assert_called()


def test_destroy_terminates_when_send_is_blocked(handle):
    """A send stuck on a full pipe holds the lock; destroy must not wait on it forever."""
    conn, process = connect_mocks(handle)
    process.is_alive.return_value = True
    handle._send_lock.acquire()
    try:
        handle.destroy(timeout=0.1)
    finally:
        handle._send_lock.release()

    conn.send.assert_not_called()
    process.terminate.assert_called_once()
    conn.close.assert_called_once()


def test_start_spawns_process_with_worker_args(handle):
    context = MagicMock()
    parent_conn, child_conn = Mock(), Mock()
    parent_conn.recv.side_effect = EOFError()
    context.Pipe.return_value = (parent_conn, child_conn)
    handle._context = context
    handle._destroying = True

    handle.start()
    handle._reader.join(timeout=1.0)

    _, kwargs = context.Process.call_args
    assert kwargs['target'] is run_worker
    assert kwargs['args'] == (child_conn, "nemo-parakeet-tdt-0.6b-v3", "./models/parakeet", False, 16000)
    assert kwargs['daemon'] is True
    context.Process.return_value.start.assert_called_once()
    child_conn.close.assert_called_once()


# ============================================================================
# Child entry point
# ============================================================================

@patch('speechstream.worker.OnnxAsrDecoder.resolve_model_artifacts')
@patch('speechstream.worker.OnnxAsrDecoder.OnnxAsrDecoderModel')
def test_run_worker_reports_ready_then_serves(mock_model_cls, mock_resolve):
    mock_model_cls.return_value.create_session.return_value = Mock()
    conn = Mock()
    conn.recv.side_effect = [protocol.DESTROY]

    run_worker(conn, "nemo-parakeet-tdt-0.6b-v3", "./models/parakeet")

    conn.send.assert_called_once_with({"ready": True})
    conn.close.assert_called_once()


@patch('speechstream.worker.OnnxAsrDecoder.resolve_model_artifacts')
def test_run_worker_missing_model_is_fatal(mock_resolve):
    mock_resolve.side_effect = FileNotFoundError("Decoder model not found")
    conn = Mock()

    with pytest.raises(FileNotFoundError):
        run_worker(conn, "nemo-parakeet-tdt-0.6b-v3", "./missing")

    conn.send.assert_not_called()
    conn.close.assert_called_once()
