# speechstream/engine/WorkerSender.py
"""
Tests for this module:
- tests/test_worker_sender.py - Delivery order, stall detection, failure reporting
"""
from __future__ import annotations
import queue
import threading
import logging
from typing import Any, Callable, TYPE_CHECKING

from speechstream.errors import WorkerUnavailable

if TYPE_CHECKING:
    from speechstream.worker.WorkerProcess import WorkerProcess

# Worker handle methods the engine may call
COMMANDS = frozenset({'send_audio', 'end_stream', 'reset_stream'})


class WorkerSender:
    """Delivers engine commands to the decode worker from a dedicated thread.

    The engine thread only enqueues (submit() never blocks), so a worker that
    stops reading its pipe cannot stall the engine loop. A full outbound
    queue marks the sender as stalled until the delivery thread catches up
    and the queue is empty again.

    Delivery failures (WorkerUnavailable) are reported through on_failure with
    the command name; they are never raised on the delivery thread.

    Args:
        worker: Worker handle with send_audio / end_stream / reset_stream
        on_failure: Called as on_failure(command, error) on a failed delivery
        maxsize: Bound of the outbound queue
    """

    def __init__(self,
                 worker: "WorkerProcess",
                 on_failure: Callable[[str, WorkerUnavailable], None],
                 maxsize: int = 200):
        self.worker = worker
        self.on_failure = on_failure
        self.outbound_queue: queue.Queue = queue.Queue(maxsize=maxsize)
        self._stalled = threading.Event()

        self.is_running: bool = False
        self.thread: threading.Thread | None = None

    @property
    def stalled(self) -> bool:
        return self._stalled.is_set()

    def submit(self, command: str, *args: Any) -> bool:
        """Queue a worker command.

        Returns:
            False if the outbound queue is full (worker not keeping up)
        """
        if command not in COMMANDS:
            raise ValueError(f"Unknown worker command {command!r}")
        try:
            self.outbound_queue.put_nowait((command, args))
            return True
        except queue.Full:
            self._stalled.set()
            return False

    def start(self) -> None:
        self.is_running = True
        self.thread = threading.Thread(target=self.process, daemon=True, name="WorkerSender")
        self.thread.start()

    def stop(self, timeout: float = 2.0) -> None:
        """Stop the delivery thread; a delivery blocked on a dead pipe is abandoned."""
        self.is_running = False
        if self.thread and self.thread is not threading.current_thread():
            self.thread.join(timeout=timeout)
            if self.thread.is_alive():
                logging.warning("WorkerSender: delivery thread still blocked on the worker, abandoning it")

    def process(self) -> None:
        """Delivery loop."""
        while self.is_running:
            try:
                command, args = self.outbound_queue.get(timeout=0.1)
            except queue.Empty:
                continue
            self._deliver(command, args)

    def deliver_pending(self) -> None:
        """Deliver every queued command on the calling thread."""
        while True:
            try:
                command, args = self.outbound_queue.get_nowait()
            except queue.Empty:
                return
            self._deliver(command, args)

    def _deliver(self, command: str, args: tuple) -> None:
        try:
            getattr(self.worker, command)(*args)
        except WorkerUnavailable as e:
            self.on_failure(command, e)
        if self.outbound_queue.empty() and self._stalled.is_set():
            logging.info("WorkerSender: worker caught up, outbound queue empty")
            self._stalled.clear()
