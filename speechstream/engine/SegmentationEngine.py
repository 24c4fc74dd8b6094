# speechstream/engine/SegmentationEngine.py
"""
Tests for this module:
- tests/test_segmentation_engine_state_machine.py - Recording state machine transitions
- tests/test_segmentation_engine_timers.py - Silence threshold and inactivity timeout
- tests/test_segmentation_engine_queue.py - Input ordering, backpressure, worker replies, blocked worker
"""
from __future__ import annotations
import queue
import threading
import time
import logging
from typing import Any, Callable, Dict, Optional, TYPE_CHECKING

from speechstream.engine.ResultDispatcher import ResultDispatcher
from speechstream.engine.SilenceRing import SilenceRing
from speechstream.engine.WorkerSender import WorkerSender
from speechstream.errors import WorkerUnavailable
from speechstream.types import (
    NoRecognition,
    RecognitionResult,
    RecordingState,
    VadState,
    VadVerdict,
    WorkerReady,
)
from speechstream.worker.protocol import decode_worker_message

if TYPE_CHECKING:
    from speechstream.EventEmitter import EventEmitter
    from speechstream.SpeechConfig import SpeechConfig
    from speechstream.vad.VoiceActivityClassifier import VoiceActivityClassifier
    from speechstream.worker.WorkerProcess import WorkerProcess


def monotonic_ms() -> float:
    return time.monotonic() * 1000


class InactivityTimer:
    """Deadline re-armed by every audio chunk, checked by the engine loop.

    Each arm() or cancel() starts a new generation. due() reports the
    generation an expired deadline was armed under, so the engine can ignore
    an expiry that belongs to a generation already superseded.

    Args:
        timeout_ms: Milliseconds without audio before the timer expires
    """

    def __init__(self, timeout_ms: float = 1000) -> None:
        self.timeout_ms: float = timeout_ms
        self.generation: int = 0
        self._deadline: float | None = None
        self._armed_generation: int | None = None

    @property
    def armed(self) -> bool:
        return self._deadline is not None

    def arm(self, now: float) -> int:
        self.generation += 1
        self._deadline = now + self.timeout_ms
        self._armed_generation = self.generation
        return self.generation

    def cancel(self) -> None:
        self.generation += 1
        self._deadline = None
        self._armed_generation = None

    def due(self, now: float) -> int | None:
        """Return the armed generation if the deadline has passed, else None.

        An expired deadline is reported once.
        """
        if self._deadline is None or now < self._deadline:
            return None
        generation = self._armed_generation
        self._deadline = None
        self._armed_generation = None
        return generation


class SegmentationEngine:
    """Splits a continuous audio stream into utterances for the decode worker.

    Runs in a dedicated thread. Audio chunks and control requests are read
    from a bounded input_queue in arrival order; worker replies are read from
    reply_queue and drained before every item. Classification, state
    transitions, result dispatch and timers therefore all run on one thread
    and engine state needs no locks.

    Recording State Machine:
    - IDLE (RecordingState.OFF): silent chunks go to the SilenceRing pre-roll
    - ACTIVE (RecordingState.ON): every voiced or silent chunk is fed to the worker

    Transition Rules:
    IDLE → ACTIVE: VOICE chunk; ring content + chunk fed as one buffer
    ACTIVE → IDLE: SILENCE for more than silence_threshold ms since the first
                   silent chunk after the last VOICE chunk (stream-end)
    ANY → IDLE: stream reset (request, inactivity timeout, worker exit)
    NOISE and ERROR verdicts never change state.

    Boundary chunk:
    - The silent chunk that trips the threshold is fed to the worker and
      also reseeds the ring, so the next utterance starts with it.

    Worker commands go through a WorkerSender and are delivered from its own
    thread. When its outbound queue fills up the worker is unresponsive: the
    current utterance is reset on the engine side at once, and audio is
    dropped unclassified until the sender has caught up.

    Args:
        classifier: Object with classify(audio, sample_rate) -> VadVerdict
            and, optionally, reset_state()
        worker: Decode worker handle (send_audio, end_stream, reset_stream)
        emitter: EventEmitter receiving engine events
        config: SpeechConfig
        dispatcher: ResultDispatcher (built from config when omitted)
        clock: Millisecond clock used for silence and inactivity timing
    """

    POLL_INTERVAL: float = 0.05

    def __init__(self,
                 classifier: "VoiceActivityClassifier",
                 worker: "WorkerProcess",
                 emitter: "EventEmitter",
                 config: "SpeechConfig",
                 dispatcher: Optional[ResultDispatcher] = None,
                 clock: Callable[[], float] = monotonic_ms):

        self.classifier = classifier
        self.worker = worker
        self.emitter = emitter
        self.dispatcher: ResultDispatcher = dispatcher or ResultDispatcher(
            emitter, spurious_tokens=config.spurious_tokens
        )
        self._clock = clock

        # Configuration
        self.sample_rate: int = config.sample_rate
        self.silence_threshold: float = config.silence_threshold
        self.verbose: bool = config.debug

        # Queues
        self.input_queue: queue.Queue = queue.Queue(maxsize=config.queue_size)  # INPUT: audio + control
        self.reply_queue: queue.Queue = queue.Queue()                           # INPUT: worker messages
        self._enqueue_lock = threading.Lock()
        self._next_seq: int = 0
        self._last_seq_processed: int = -1
        self.dropped_chunks: int = 0

        # OUTPUT: worker commands
        self.sender: WorkerSender = WorkerSender(worker, self._on_send_failure, maxsize=config.queue_size)
        self._reset_pending: bool = False

        # Segmentation state
        self.recording_state: RecordingState = RecordingState.OFF
        self.vad_state: VadState | None = None
        self.recorded_chunks: int = 0
        self.silence_start: float | None = None
        self.silence_ring: SilenceRing = SilenceRing(config.buffer_size)
        self.last_silence_chunk: bytes | None = None
        self.hotword: str | None = None
        self.connected: bool = False
        self.timer: InactivityTimer = InactivityTimer(config.inactivity_timeout)

        # Threading control
        self.is_running: bool = False
        self.thread: threading.Thread | None = None

    # ========================================================================
    # Thread-safe producer API
    # ========================================================================

    def stream_data(self,
                    audio: bytes,
                    sample_rate: int | None = None,
                    hotword: str | None = None,
                    vad_audio: Any = None) -> None:
        """Queue one audio chunk for processing.

        Args:
            audio: 16-bit PCM mono bytes forwarded to the decoder
            sample_rate: Sample rate in Hz (config sample rate when None)
            hotword: Tag for the next recognition result
            vad_audio: Optional float32 samples classified instead of audio
        """
        self._enqueue({
            'type': 'audio',
            'audio': audio,
            'sample_rate': sample_rate or self.sample_rate,
            'hotword': hotword,
            'vad_audio': vad_audio,
        })

    def request_reset(self) -> None:
        """Queue a stream reset behind any audio already queued."""
        self._enqueue({'type': 'control', 'command': 'reset'})

    def post_worker_message(self, message: Any) -> None:
        """Hand a worker message to the engine thread (called from the reader thread)."""
        self.reply_queue.put(('message', message))

    def on_worker_exit(self, exitcode: int | None) -> None:
        """Hand a worker exit notification to the engine thread."""
        self.reply_queue.put(('exit', exitcode))

    def _enqueue(self, item: Dict[str, Any]) -> None:
        """Assign a sequence number and put item on input_queue.

        On overflow the worker is considered unresponsive: pending items are
        discarded and a forced reset is queued in their place.
        """
        with self._enqueue_lock:
            item['seq'] = self._next_seq
            self._next_seq += 1
            try:
                self.input_queue.put_nowait(item)
            except queue.Full:
                self._handle_overflow(item)

    def _handle_overflow(self, item: Dict[str, Any]) -> None:
        """Replace everything queued with a single overflow-reset item.

        Only audio counts as dropped; queued resets are folded into the one
        overflow-reset, which takes the sequence number of the earliest
        discarded item so it is never reordered behind later audio.
        """
        discarded = [item]
        try:
            while True:
                discarded.append(self.input_queue.get_nowait())
        except queue.Empty:
            pass
        dropped = sum(1 for d in discarded if d['type'] == 'audio')
        self.dropped_chunks += dropped
        logging.error(
            f"SegmentationEngine: input_queue full; "
            f"discarded {dropped} queued chunks, forcing stream reset"
        )
        first_seq = min(d['seq'] for d in discarded)
        self.input_queue.put_nowait({'type': 'control', 'command': 'overflow-reset', 'seq': first_seq})

    # ========================================================================
    # Engine thread
    # ========================================================================

    def start(self) -> None:
        """Start processing and delivery threads"""
        self.is_running = True
        self.sender.start()
        self.thread = threading.Thread(target=self.process, daemon=True, name="SegmentationEngine")
        self.thread.start()

    def stop(self) -> None:
        """Stop processing and delivery threads"""
        self.is_running = False
        if self.thread and self.thread is not threading.current_thread():
            self.thread.join(timeout=2.0)
        self.sender.stop()

    def process(self) -> None:
        """Main loop: worker replies, then one input item, then timers."""
        while self.is_running:
            self._drain_replies()
            try:
                item = self.input_queue.get(timeout=self.POLL_INTERVAL)
            except queue.Empty:
                item = None
            if item is not None:
                self._drain_replies()
                self._process_item(item)
            self.check_timers()

    def _drain_replies(self) -> None:
        while True:
            try:
                kind, payload = self.reply_queue.get_nowait()
            except queue.Empty:
                return
            if kind == 'exit':
                self._handle_worker_exit(payload)
            elif kind == 'send-failed':
                self._handle_send_failure(*payload)
            else:
                self.handle_worker_message(payload)

    def _process_item(self, item: Dict[str, Any]) -> None:
        """Process one input item (audio chunk or control request)."""
        seq = item.get('seq', self._last_seq_processed + 1)
        if seq <= self._last_seq_processed:
            logging.warning(f"SegmentationEngine: out-of-order item seq={seq}, last={self._last_seq_processed}")
        self._last_seq_processed = max(seq, self._last_seq_processed)

        if self._reset_pending and not self.sender.stalled:
            # Worker caught up: it still holds the abandoned utterance
            self._reset_pending = not self._send('reset_stream')

        if item['type'] == 'control':
            if item['command'] == 'overflow-reset':
                self._set_recording_state(RecordingState.OFF)
            self.stream_reset()
            return

        if self.sender.stalled:
            self.dropped_chunks += 1
            logging.debug(f"SegmentationEngine: worker stalled, dropping chunk seq={seq}")
            return

        if item.get('hotword'):
            logging.info(f"SegmentationEngine: set hotword {item['hotword']}")
            self.hotword = item['hotword']

        verdict = self._classify(item)

        # stream_end() during process_chunk cancels this arm
        self.timer.arm(self._clock())
        self.process_chunk(item['audio'], verdict)

    def _classify(self, item: Dict[str, Any]) -> VadVerdict:
        data = item['vad_audio'] if item.get('vad_audio') is not None else item['audio']
        try:
            return self.classifier.classify(data, item['sample_rate'])
        except Exception as e:
            logging.error(f"SegmentationEngine: VAD error: {e}", exc_info=self.verbose)
            return VadVerdict.ERROR

    # ========================================================================
    # State machine
    # ========================================================================

    def process_chunk(self, audio: bytes, verdict: VadVerdict) -> None:
        """Apply one classified chunk to the recording state machine.

        Args:
            audio: 16-bit PCM bytes
            verdict: Classifier verdict for the chunk
        """
        match verdict:
            case VadVerdict.VOICE:
                self._process_voice(audio)
            case VadVerdict.SILENCE:
                self._process_silence(audio)
            case VadVerdict.NOISE:
                logging.debug("SegmentationEngine: VAD NOISE")
            case VadVerdict.ERROR:
                logging.warning("SegmentationEngine: VAD ERROR")

    def _process_voice(self, audio: bytes) -> None:
        self.silence_start = None

        if self.recorded_chunks == 0:
            # IDLE → ACTIVE
            self._set_recording_state(RecordingState.ON)
        else:
            self._send_vad_state(VadState.VOICE)
        self.recorded_chunks += 1

        self._feed(self.silence_ring.flush_with(audio))

    def _process_silence(self, audio: bytes) -> None:
        if self.recorded_chunks > 0:
            # ACTIVE: silence is still part of the utterance audio
            self._send_vad_state(VadState.IDLE)
            if not self._feed(audio):
                return

            now = self._clock()
            if self.silence_start is None:
                self.silence_start = now
            elif now - self.silence_start > self.silence_threshold:
                # ACTIVE → IDLE
                self.last_silence_chunk = audio
                self.silence_start = None
                self._set_recording_state(RecordingState.OFF)
                self.stream_end()
        else:
            self._send_vad_state(VadState.SILENCE)
            if audio:
                self.silence_ring.push(audio)

    def _feed(self, data: bytes) -> bool:
        if self._send('send_audio', data):
            return True
        # The utterance cannot be completed
        self.stream_reset()
        return False

    def _send(self, command: str, *args: Any) -> bool:
        if self.sender.submit(command, *args):
            return True
        logging.error(f"SegmentationEngine: worker unresponsive, outbound queue full; {command} not sent")
        return False

    def stream_end(self) -> None:
        """Finish the current utterance and ask the worker for its text.

        The boundary chunk saved when the silence threshold tripped becomes
        the only chunk in the ring, so the next utterance keeps its first instant.
        """
        self.timer.cancel()
        self._set_recording_state(RecordingState.OFF)
        self.recorded_chunks = 0
        self.silence_start = None

        if self.last_silence_chunk is not None:
            self.silence_ring.reseed(self.last_silence_chunk)
            self.last_silence_chunk = None

        if not self._send('end_stream'):
            self._dispatch_no_recognition()
            self.stream_reset()

    def stream_reset(self) -> None:
        """Abandon the current utterance; the worker discards any decoded text.

        Engine-side state is reset immediately. The worker's reset is best
        effort: if it cannot be queued it is sent once the worker has caught up.
        """
        self.timer.cancel()
        self._disable_hotword()
        self._set_recording_state(RecordingState.OFF)
        if self.verbose:
            logging.debug("SegmentationEngine: [reset]")
        self.recorded_chunks = 0
        self.silence_start = None
        self.last_silence_chunk = None
        self._reset_classifier()
        if not self._send('reset_stream'):
            self._reset_pending = True

    def _reset_classifier(self) -> None:
        reset_state = getattr(self.classifier, 'reset_state', None)
        if reset_state is None:
            return
        try:
            reset_state()
        except Exception as e:
            logging.error(f"SegmentationEngine: VAD reset error: {e}", exc_info=self.verbose)

    # ========================================================================
    # Timers
    # ========================================================================

    def check_timers(self, now: float | None = None) -> None:
        """Fire the inactivity timer if its deadline has passed.

        Args:
            now: Current clock value in ms (engine clock when None)
        """
        generation = self.timer.due(self._clock() if now is None else now)
        if generation is not None:
            self._on_inactivity(generation)

    def _on_inactivity(self, generation: int) -> None:
        """Reset the stream for an inactivity expiry armed under generation.

        Callers may hold a generation captured before later arm()/cancel()
        calls; such an expiry is stale and ignored. check_timers() always
        passes a current one since due() forgets a deadline once it is
        superseded.
        """
        if generation != self.timer.generation:
            logging.debug(f"SegmentationEngine: ignoring stale inactivity timer generation={generation}")
            return
        if self.verbose:
            logging.debug("SegmentationEngine: [timeout]")
        self._set_recording_state(RecordingState.OFF)
        self.stream_reset()

    # ========================================================================
    # Worker replies
    # ========================================================================

    def handle_worker_message(self, message: Any) -> None:
        """Apply one worker → engine message.

        Args:
            message: Raw message received from the worker
        """
        try:
            decoded = decode_worker_message(message)
        except ValueError as e:
            logging.error(f"SegmentationEngine: invalid worker message: {e}")
            return

        match decoded:
            case WorkerReady():
                logging.info("SegmentationEngine: worker ready")
                self._set_connected(True)
            case NoRecognition():
                self._dispatch_no_recognition()
            case RecognitionResult():
                hotword = self.hotword
                self.dispatcher.dispatch_recognition(decoded.text, decoded.stats, hotword)
                if hotword:
                    self._disable_hotword()

    def _on_send_failure(self, command: str, error: WorkerUnavailable) -> None:
        """Hand a delivery failure to the engine thread (called from the sender thread)."""
        self.reply_queue.put(('send-failed', (command, str(error))))

    def _handle_send_failure(self, command: str, error: str) -> None:
        match command:
            case 'end_stream':
                logging.error(f"SegmentationEngine: stream-end not delivered: {error}")
                self._dispatch_no_recognition()
            case 'send_audio':
                logging.error(f"SegmentationEngine: audio not delivered to worker: {error}")
            case _:
                logging.warning(f"SegmentationEngine: reset error: {error}")

    def _dispatch_no_recognition(self) -> None:
        self.dispatcher.dispatch_no_recognition(self.hotword)
        self._disable_hotword()

    def _handle_worker_exit(self, exitcode: int | None) -> None:
        logging.error(f"SegmentationEngine: decode worker exited (code={exitcode}), resetting stream")
        self.stream_reset()
        self._set_connected(False)

    # ========================================================================
    # Event helpers
    # ========================================================================

    def _disable_hotword(self) -> None:
        if self.hotword:
            logging.info(f"SegmentationEngine: hotword was {self.hotword}")
        self.hotword = None

    def _set_connected(self, connected: bool) -> None:
        self.connected = connected
        self.emitter.emit('connect', connected)

    def _set_recording_state(self, recording_state: RecordingState) -> None:
        if self.recording_state != recording_state:
            self.recording_state = recording_state
            self.emitter.emit('recording', recording_state)

    def _send_vad_state(self, vad_state: VadState) -> None:
        self.vad_state = vad_state
        self.emitter.emit('vad', vad_state)
