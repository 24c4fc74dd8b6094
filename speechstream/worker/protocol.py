"""Encode and decode messages exchanged between the engine and the decode worker.

Engine → worker:
  "stream-reset"  : abandon the current utterance, start a fresh session
  "stream-end"    : finalize the current utterance, reply with text or noRecognition
  "destroy"       : terminate the worker
  bytes           : raw 16-bit PCM payload (length > 1) fed to the active session

Worker → engine (plain dicts, picklable over a multiprocessing connection):
  {"ready": True}
  {"recognize": {"text": str, "stats": {"recogTime", "audioLength", "model"}}}
  {"noRecognition": True}
"""

from typing import Any, Union

from speechstream.types import NoRecognition, RecognitionResult, RecognitionStats, WorkerReady

STREAM_RESET = "stream-reset"
STREAM_END = "stream-end"
DESTROY = "destroy"

CONTROL_COMMANDS = frozenset({STREAM_RESET, STREAM_END, DESTROY})

WorkerMessage = Union[WorkerReady, RecognitionResult, NoRecognition]


def is_audio_payload(message: Any) -> bool:
    """Return True if message is an audio payload the worker should feed.

    Args:
        message: Object received from the engine.

    Returns:
        True for bytes-like payloads longer than one byte.
    """
    return isinstance(message, (bytes, bytearray, memoryview)) and len(message) > 1


def encode_ready() -> dict[str, Any]:
    return {"ready": True}


def encode_recognition(result: RecognitionResult) -> dict[str, Any]:
    """Encode a recognition result as a worker → engine message.

    Args:
        result: Non-empty recognition result.

    Returns:
        Message dict with a ``recognize`` key.
    """
    return {
        "recognize": {
            "text": result.text,
            "stats": result.stats.to_message(),
        }
    }


def encode_no_recognition() -> dict[str, Any]:
    return {"noRecognition": True}


def decode_worker_message(message: Any) -> WorkerMessage:
    """Decode a worker → engine message.

    Algorithm:
        1. Reject anything that is not a dict.
        2. ``ready`` → WorkerReady.
        3. ``noRecognition`` → NoRecognition.
        4. ``recognize`` → RecognitionResult; empty text is decoded as NoRecognition.

    Args:
        message: Object received from the worker connection.

    Returns:
        Decoded message.

    Raises:
        ValueError: On any unknown or malformed message.
    """
    if not isinstance(message, dict):
        raise ValueError(f"Expected dict from worker, got {type(message).__name__}")

    if message.get("ready") is True:
        return WorkerReady()

    if "noRecognition" in message:
        return NoRecognition()

    if "recognize" in message:
        payload = message["recognize"]
        try:
            text = payload["text"]
            stats = RecognitionStats.from_message(payload["stats"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"Malformed recognize message: {exc}") from exc
        if not text:
            return NoRecognition()
        return RecognitionResult(text=text, stats=stats)

    raise ValueError(f"Unknown worker message keys: {sorted(message)}")
