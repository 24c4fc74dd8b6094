# speechstream/ConsoleTrace.py
import sys
from typing import TextIO, TYPE_CHECKING

from speechstream.types import RecordingState, VadState

if TYPE_CHECKING:
    from speechstream.EventEmitter import EventEmitter

_VAD_MARKS = {
    VadState.SILENCE: '.',
    VadState.VOICE: '=',
    VadState.IDLE: '-',
}


class ConsoleTrace:
    """Writes a compact live trace of engine events when debugging.

    [start] / [stop] mark recording transitions; each classified chunk
    prints '.' (silence while idle), '=' (voice) or '-' (silence while recording).

    Args:
        stream: Output stream (stdout by default)
    """

    def __init__(self, stream: TextIO | None = None) -> None:
        self.stream = stream or sys.stdout

    def attach(self, emitter: "EventEmitter") -> None:
        emitter.on('recording', self.on_recording)
        emitter.on('vad', self.on_vad)

    def detach(self, emitter: "EventEmitter") -> None:
        emitter.off('recording', self.on_recording)
        emitter.off('vad', self.on_vad)

    def on_recording(self, recording_state: RecordingState) -> None:
        if recording_state == RecordingState.ON:
            self.stream.write('\n[start]')
        else:
            self.stream.write('[stop]\n')
        self.stream.flush()

    def on_vad(self, vad_state: VadState) -> None:
        self.stream.write(_VAD_MARKS[vad_state])
        self.stream.flush()
