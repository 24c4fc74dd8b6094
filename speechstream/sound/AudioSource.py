# speechstream/sound/AudioSource.py
from __future__ import annotations
import sounddevice as sd
import logging
from typing import Any, Callable


class AudioSource:
    """Captures audio from the microphone and hands raw PCM chunks to a sink.

    AudioSource uses a sounddevice RawInputStream (mono, int16) so chunks arrive
    as little-endian 16-bit PCM bytes, the format the engine and the decode
    worker expect. The callback only forwards the buffer; classification and
    segmentation run on the engine thread.

    Args:
        sink: Callable receiving each chunk (typically SpeechService.stream_data)
        sample_rate: Capture sample rate in Hz
        chunk_duration: Chunk length in seconds
        device: Optional sounddevice input device id or name
        verbose: Enable verbose logging
    """

    def __init__(self,
                 sink: Callable[[bytes], None],
                 sample_rate: int = 16000,
                 chunk_duration: float = 0.02,
                 device: Any = None,
                 verbose: bool = False):

        self.sink = sink
        self.sample_rate: int = sample_rate
        self.chunk_size: int = int(sample_rate * chunk_duration)
        self.device = device
        self.verbose: bool = verbose

        self.is_running: bool = False
        self.stream: sd.RawInputStream | None = None
        self.chunk_count: int = 0


    def audio_callback(self, indata: Any, frames: int, time_info: Any, status: Any) -> None:
        """Callback from sounddevice with a raw int16 buffer.

        Must stay fast to prevent audio dropouts.
        """
        if status:
            logging.error(f"Audio error: {status}")

        self.chunk_count += 1
        try:
            self.sink(bytes(indata))
        except Exception as e:
            logging.error(f"AudioSource: sink failed: {e}")


    def start(self) -> None:
        """Start capturing audio from the microphone."""
        self.is_running = True
        self.stream = sd.RawInputStream(
            samplerate=self.sample_rate,
            channels=1,
            dtype='int16',
            callback=self.audio_callback,
            blocksize=self.chunk_size,
            device=self.device
        )
        self.stream.start()

        if self.verbose:
            logging.info(f"AudioSource: capturing at {self.sample_rate}Hz, {self.chunk_size} samples per chunk")


    def stop(self) -> None:
        """Stop and close the input stream."""
        self.is_running = False
        if self.stream:
            self.stream.stop()
            self.stream.close()
            self.stream = None
