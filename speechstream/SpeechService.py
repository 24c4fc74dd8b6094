"""Speech service: the embedder-facing facade over engine, classifier and worker.

One SpeechService owns one SegmentationEngine, one VoiceActivityClassifier
and one decode WorkerProcess. Events are delivered through its EventEmitter.
"""

import logging
from pathlib import Path
from typing import Any, Callable, Optional

from speechstream.ConsoleTrace import ConsoleTrace
from speechstream.EventEmitter import EventEmitter
from speechstream.SpeechConfig import SpeechConfig
from speechstream.engine.SegmentationEngine import SegmentationEngine
from speechstream.errors import WorkerUnavailable
from speechstream.worker.WorkerProcess import WorkerProcess

logger = logging.getLogger(__name__)

WorkerFactory = Callable[..., Any]


class SpeechService:
    """Owns and wires the per-stream pipeline components.

    Responsibilities:
    - Build the classifier, the engine and the decode worker handle.
    - Relay worker messages and worker exit to the engine thread.
    - Start and stop the engine and the worker in order.

    Args:
        service_id: Stable identifier used by SpeechServiceRegistry.
        config: Service options.
        classifier: Voice activity classifier; a Silero classifier is built when None.
        worker_factory: Callable with the WorkerProcess signature (tests inject fakes).
        emitter: Event emitter; a new one is created when None.
    """

    def __init__(
        self,
        service_id: str,
        config: SpeechConfig,
        classifier: Any = None,
        worker_factory: Optional[WorkerFactory] = None,
        emitter: Optional[EventEmitter] = None,
    ) -> None:
        self.service_id = service_id
        self.config = config
        self.emitter = emitter or EventEmitter(verbose=config.debug)

        if classifier is None:
            from speechstream.vad.VoiceActivityClassifier import VoiceActivityClassifier
            classifier = VoiceActivityClassifier(
                model_path=Path(config.vad_model_path),
                vad_mode=config.vad_mode,
                verbose=config.debug,
            )
        self.classifier = classifier

        factory = worker_factory or WorkerProcess
        self.worker = factory(
            model_name=config.model_name,
            model_path=config.model_path,
            on_message=self._on_worker_message,
            on_exit=self._on_worker_exit,
            debug_process=config.debug_process,
            sample_rate=config.sample_rate,
        )

        self.engine = SegmentationEngine(
            classifier=self.classifier,
            worker=self.worker,
            emitter=self.emitter,
            config=config,
        )

        self._trace: ConsoleTrace | None = None
        if config.debug:
            self._trace = ConsoleTrace()
            self._trace.attach(self.emitter)

        logger.info("SpeechService[%s]: created", service_id)

    @property
    def connected(self) -> bool:
        return self.engine.connected

    @property
    def state(self) -> dict:
        """Snapshot of the observable service state."""
        return {
            "id": self.service_id,
            "connected": self.engine.connected,
            "recording": self.engine.recording_state,
            "vad": self.engine.vad_state,
            "hotword": self.engine.hotword,
            "modelName": self.config.model_name,
        }

    def on(self, event: str, handler: Callable[..., Any]) -> None:
        self.emitter.on(event, handler)

    def off(self, event: str, handler: Callable[..., Any]) -> None:
        self.emitter.off(event, handler)

    def connect(self) -> None:
        """Start the engine thread and spawn the decode worker.

        ``connect(True)`` is emitted once the worker reports ready.
        """
        logger.info("SpeechService[%s]: connecting", self.service_id)
        self.engine.start()
        self.worker.start()

    def stream_data(self, audio: bytes, sample_rate: int | None = None,
                    hotword: str | None = None, vad_audio: Any = None) -> None:
        self.engine.stream_data(audio, sample_rate=sample_rate, hotword=hotword, vad_audio=vad_audio)

    def stream_reset(self) -> None:
        self.engine.request_reset()

    def disconnect(self) -> None:
        """Stop the engine thread and report the service as disconnected."""
        self.engine.stop()
        self.engine.connected = False
        self.emitter.emit("connect", False)

    def destroy(self) -> None:
        """Terminate the decode worker and disconnect.

        Algorithm:
            1. Send "destroy" and wait for the worker to exit (terminate on timeout).
            2. Stop the engine thread.
            3. Emit connect(False).
        """
        try:
            self.worker.destroy()
        except WorkerUnavailable as e:
            logger.warning("SpeechService[%s]: destroy error: %s", self.service_id, e)
        self.disconnect()
        if self._trace is not None:
            self._trace.detach(self.emitter)
        logger.info("SpeechService[%s]: destroyed", self.service_id)

    def _on_worker_message(self, message: Any) -> None:
        self.engine.post_worker_message(message)

    def _on_worker_exit(self, exitcode: int | None) -> None:
        self.engine.on_worker_exit(exitcode)
