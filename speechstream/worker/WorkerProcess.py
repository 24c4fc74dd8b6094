"""Decode worker hosted in a child process.

run_worker() is the child-process entry point: it loads the decoder model,
reports ``{"ready": True}`` and serves engine messages until ``"destroy"``
or until the parent closes the connection. WorkerProcess is the parent-side
handle that spawns the child and relays its messages back on a reader thread.
"""

import logging
import multiprocessing
import sys
import threading
from pathlib import Path
from typing import Any, Callable

from speechstream.errors import WorkerUnavailable
from speechstream.worker import protocol
from speechstream.worker.DecodeWorker import DecodeWorker

logger = logging.getLogger(__name__)


def serve_connection(conn: Any, worker: DecodeWorker) -> str:
    """Receive engine messages on conn and apply them to worker.

    Algorithm:
        1. Block on conn.recv().
        2. "destroy" → return "destroy".
        3. Anything else → worker.handle_message(); send the reply if any.
        4. EOF (parent gone) → return "eof".

    Errors raised by the worker are not caught: they are fatal to the worker.

    Args:
        conn: multiprocessing Connection end owned by the worker.
        worker: DecodeWorker with an active session.

    Returns:
        Reason the loop ended: ``"destroy"`` or ``"eof"``.
    """
    while True:
        try:
            message = conn.recv()
        except EOFError:
            logger.info("WorkerProcess: engine connection closed")
            return "eof"

        if message == protocol.DESTROY:
            logger.info("WorkerProcess: destroy received")
            return "destroy"

        reply = worker.handle_message(message)
        if reply is not None:
            conn.send(reply)


def run_worker(
    conn: Any,
    model_name: str,
    model_path: str,
    debug_process: bool = False,
    sample_rate: int = 16000,
) -> None:
    """Child-process entry point.

    Args:
        conn: Worker end of a multiprocessing Pipe.
        model_name: Decoder model identifier, reported in stats.
        model_path: Model artifact base path.
        debug_process: Enable DEBUG logging inside the worker.
        sample_rate: Sample rate of the audio the engine sends.
    """
    logging.basicConfig(
        level=logging.DEBUG if debug_process else logging.WARNING,
        format="[%(asctime)s] [%(levelname)s] [worker] %(message)s",
        stream=sys.stderr,
    )
    from speechstream.worker.OnnxAsrDecoder import OnnxAsrDecoderModel, resolve_model_artifacts

    logger.debug("WorkerProcess: model name=%s path=%s", model_name, model_path)
    try:
        artifacts = resolve_model_artifacts(model_path)
        model = OnnxAsrDecoderModel(model_name, artifacts, sample_rate=sample_rate)
        worker = DecodeWorker(model, model_name=model_name, sample_rate=sample_rate)
        worker.start()

        conn.send(protocol.encode_ready())
        logger.debug("WorkerProcess: ready")
        serve_connection(conn, worker)
    except Exception:
        logger.exception("WorkerProcess: fatal decode worker error")
        raise
    finally:
        conn.close()


class WorkerProcess:
    """Parent-side handle for the decode worker child process.

    Spawns run_worker() in a child process connected by a duplex Pipe.
    A daemon reader thread forwards every worker message to on_message and
    reports the child's exit code through on_exit once the pipe closes.

    Args:
        model_name: Decoder model identifier.
        model_path: Model artifact base path.
        on_message: Called on the reader thread with each worker message.
        on_exit: Called on the reader thread with the child's exit code.
        debug_process: Enable DEBUG logging inside the worker.
        sample_rate: Sample rate of the audio sent to the worker.
        target: Child entry point (run_worker by default).
    """

    def __init__(
        self,
        model_name: str,
        model_path: str | Path,
        on_message: Callable[[Any], None],
        on_exit: Callable[[int | None], None],
        debug_process: bool = False,
        sample_rate: int = 16000,
        target: Callable[..., None] = run_worker,
    ) -> None:
        self._model_name = model_name
        self._model_path = str(model_path)
        self._on_message = on_message
        self._on_exit = on_exit
        self._debug_process = debug_process
        self._sample_rate = sample_rate
        self._target = target

        self._context = multiprocessing.get_context("spawn")
        self._process = None
        self._conn = None
        self._send_lock = threading.Lock()
        self._reader: threading.Thread | None = None
        self._destroying = False

    @property
    def is_alive(self) -> bool:
        return self._process is not None and self._process.is_alive()

    @property
    def exitcode(self) -> int | None:
        return None if self._process is None else self._process.exitcode

    def start(self) -> None:
        """Spawn the worker process and start the reader thread."""
        parent_conn, child_conn = self._context.Pipe(duplex=True)
        self._process = self._context.Process(
            target=self._target,
            args=(child_conn, self._model_name, self._model_path,
                  self._debug_process, self._sample_rate),
            daemon=True,
            name="DecodeWorker",
        )
        self._process.start()
        child_conn.close()
        self._conn = parent_conn

        self._reader = threading.Thread(target=self._read_loop, daemon=True, name="DecodeWorkerReader")
        self._reader.start()
        logger.info("WorkerProcess: started pid=%s model=%s", self._process.pid, self._model_name)

    def send(self, message: Any) -> None:
        """Send a message to the worker.

        Raises:
            WorkerUnavailable: If the worker is not running or the pipe is broken.
        """
        if self._conn is None:
            raise WorkerUnavailable("decode worker not started")
        try:
            with self._send_lock:
                self._conn.send(message)
        except (OSError, ValueError) as exc:
            raise WorkerUnavailable(f"decode worker unreachable: {exc}") from exc

    def send_audio(self, audio: bytes) -> None:
        self.send(bytes(audio))

    def end_stream(self) -> None:
        self.send(protocol.STREAM_END)

    def reset_stream(self) -> None:
        self.send(protocol.STREAM_RESET)

    def destroy(self, timeout: float = 2.0) -> None:
        """Ask the worker to exit, then terminate it if it does not.

        Args:
            timeout: Seconds to wait for a clean exit.
        """
        self._destroying = True
        # A send blocked on a full pipe holds the lock until the child is gone
        if self._send_lock.acquire(timeout=timeout):
            try:
                if self._conn is not None:
                    self._conn.send(protocol.DESTROY)
            except (OSError, ValueError) as exc:
                logger.warning("WorkerProcess: destroy not delivered: %s", exc)
            finally:
                self._send_lock.release()
        else:
            logger.warning("WorkerProcess: pipe blocked, destroy not sent")

        if self._process is not None:
            self._process.join(timeout=timeout)
            if self._process.is_alive():
                logger.warning("WorkerProcess: worker did not exit, terminating")
                self._process.terminate()
                self._process.join(timeout=timeout)

        if self._conn is not None:
            self._conn.close()
        if self._reader is not None and self._reader is not threading.current_thread():
            self._reader.join(timeout=timeout)

    def _read_loop(self) -> None:
        """Forward worker messages until the pipe closes, then report exit."""
        conn = self._conn
        while True:
            try:
                message = conn.recv()
            except (EOFError, OSError):
                break
            try:
                self._on_message(message)
            except Exception:
                logger.exception("WorkerProcess: on_message handler failed")

        if self._process is not None:
            self._process.join(timeout=1.0)
        exitcode = self.exitcode
        if self._destroying:
            logger.info("WorkerProcess: worker exited code=%s", exitcode)
            return
        logger.error("WorkerProcess: worker exited unexpectedly code=%s", exitcode)
        self._on_exit(exitcode)
