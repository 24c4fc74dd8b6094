# speechstream/worker/DecodeWorker.py
"""
Tests for this module:
- tests/test_decode_worker.py - Session lifecycle, audio length accounting, message handling
"""
from __future__ import annotations
import time
import logging
from typing import Any, Optional, TYPE_CHECKING

from speechstream.errors import ProtocolViolation
from speechstream.types import RecognitionResult, RecognitionStats
from speechstream.worker import protocol

if TYPE_CHECKING:
    from speechstream.worker.OnnxAsrDecoder import DecodeSession, DecoderModel

logger = logging.getLogger(__name__)


class DecodeWorker:
    """Owns exactly one decode session and implements its lifecycle.

    The session handle never leaves this object: callers only see start(),
    feed(), finish() and reset(). After finish() and reset() a fresh session
    is created before returning, so a feed() following them cannot hit a
    missing session.

    Audio length accounting:
    - Each fed chunk adds len(bytes) / 2 / sample_rate * 1000 ms (float)
    - Reported audio_length is rounded to the nearest millisecond at finish()

    Args:
        model: Loaded decoder model that opens sessions
        model_name: Identifier reported in recognition stats
        sample_rate: Sample rate of the fed 16-bit PCM audio in Hz
    """

    def __init__(self, model: "DecoderModel", model_name: str, sample_rate: int = 16000) -> None:
        self._model = model
        self.model_name: str = model_name
        self.sample_rate: int = sample_rate
        self._session: Optional["DecodeSession"] = None
        self.recorded_audio_length: float = 0.0

    @property
    def has_session(self) -> bool:
        return self._session is not None

    def start(self) -> None:
        """Create a new decode session.

        Raises:
            ProtocolViolation: If a session already exists
        """
        if self._session is not None:
            raise ProtocolViolation("decode session already exists")
        self._session = self._model.create_session()
        self.recorded_audio_length = 0.0

    def feed(self, chunk: bytes) -> None:
        """Feed 16-bit PCM bytes to the active session.

        Raises:
            ProtocolViolation: If no session is active
        """
        if self._session is None:
            raise ProtocolViolation("feed without an active decode session")
        self.recorded_audio_length += (len(chunk) / 2) * (1 / self.sample_rate) * 1000
        self._session.feed(chunk)

    def finish(self) -> RecognitionResult | None:
        """Finalize the active session and immediately start a new one.

        Algorithm:
        1. Finish the session, timing the call for recog_time
        2. Trim decoded text
        3. Drop the session and start() a fresh one
        4. Return a result for non-empty text, None otherwise

        Returns:
            RecognitionResult or None if nothing was recognized

        Raises:
            ProtocolViolation: If no session is active
        """
        if self._session is None:
            raise ProtocolViolation("finish without an active decode session")

        start = time.perf_counter()
        text = (self._session.finish() or "").strip()
        recog_time = int((time.perf_counter() - start) * 1000)
        audio_length = round(self.recorded_audio_length)

        self._session = None
        self.start()

        if not text:
            return None

        logger.debug("DecodeWorker: recognized text %r (%d ms audio)", text, audio_length)
        return RecognitionResult(
            text=text,
            stats=RecognitionStats(
                recog_time=recog_time,
                audio_length=audio_length,
                model=self.model_name,
            ),
        )

    def reset(self) -> None:
        """Abandon the current utterance; decoded text is discarded."""
        logger.debug("DecodeWorker: reset")
        self.finish()

    def handle_message(self, message: Any) -> dict[str, Any] | None:
        """Apply one engine → worker message.

        Args:
            message: Control string or audio payload

        Returns:
            Reply to send back to the engine, or None
        """
        if isinstance(message, str):
            if message not in protocol.CONTROL_COMMANDS:
                logger.warning("DecodeWorker: ignoring unknown command %r", message)
                return None
            if message == protocol.STREAM_END:
                result = self.finish()
                if result is None:
                    return protocol.encode_no_recognition()
                return protocol.encode_recognition(result)
            if message == protocol.STREAM_RESET:
                self.reset()
                return None
            # DESTROY ends the connection loop before it gets here
            logger.warning("DecodeWorker: %r is handled by the connection loop, ignoring", message)
            return None

        if protocol.is_audio_payload(message):
            self.feed(bytes(message))
            return None

        logger.warning("DecodeWorker: ignoring message of type %s", type(message).__name__)
        return None
