# speechstream/engine/ResultDispatcher.py
from __future__ import annotations
import logging
from typing import Iterable, TYPE_CHECKING

if TYPE_CHECKING:
    from speechstream.EventEmitter import EventEmitter
    from speechstream.types import RecognitionStats

DEFAULT_SPURIOUS_TOKENS: frozenset[str] = frozenset({"he"})


class ResultDispatcher:
    """Turns decode worker results into engine events.

    Hotword results bypass the spurious-token filter: a hotword-tagged
    utterance always produces a ``hotword`` event. Untagged text that exactly
    matches a known decoder artifact (by default "he", emitted during silence
    by some decoder versions) is dropped without an event.

    The dispatcher does not own the hotword; the engine passes the current
    tag in and clears it after dispatch.

    Args:
        emitter: Event emitter receiving recognize / hotword / no-recognition
        spurious_tokens: Exact texts treated as decoder artifacts
    """

    def __init__(self,
                 emitter: "EventEmitter",
                 spurious_tokens: Iterable[str] = DEFAULT_SPURIOUS_TOKENS) -> None:
        self.emitter = emitter
        self.spurious_tokens: frozenset[str] = frozenset(spurious_tokens)

    def dispatch_recognition(self, text: str, stats: "RecognitionStats", hotword: str | None) -> bool:
        """Emit a hotword or recognize event for text.

        Args:
            text: Recognized, non-empty text
            stats: Recognition stats; hotword is attached when set
            hotword: Current hotword tag or None

        Returns:
            True if an event was emitted, False if the text was filtered
        """
        if hotword:
            logging.debug(f"ResultDispatcher: hotword was set: {hotword}")
            stats.hotword = hotword
            self.emitter.emit('hotword', hotword, text, stats)
            return True

        if text in self.spurious_tokens:
            logging.info(f"ResultDispatcher: skipping spurious token {text!r}")
            return False

        self.emitter.emit('recognize', text, stats)
        return True

    def dispatch_no_recognition(self, hotword: str | None) -> None:
        self.emitter.emit('no-recognition', hotword)
