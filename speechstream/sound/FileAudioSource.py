# speechstream/sound/FileAudioSource.py
from __future__ import annotations
import numpy as np
import time
import logging
import threading
from typing import Callable, List


class FileAudioSource:
    """File-based audio source feeding PCM chunks at real-time rate.

    The interface matches AudioSource (start/stop methods) for drop-in
    replacement, which makes recognition runs over recorded audio reproducible.

    Processing steps:
    1. Load audio file using soundfile as int16
    2. Convert to mono if stereo (take first channel)
    3. Split into chunk_duration chunks, zero-padding the last one
    4. Feed chunks to the sink at real-time rate when started

    Args:
        sink: Callable receiving each chunk as 16-bit PCM bytes
        file_path: Path to the audio file to load
        sample_rate: Expected sample rate; the file must match it
        chunk_duration: Chunk length in seconds
        verbose: Enable verbose logging

    Raises:
        ValueError: If the file sample rate differs from sample_rate
    """

    def __init__(self,
                 sink: Callable[[bytes], None],
                 file_path: str,
                 sample_rate: int = 16000,
                 chunk_duration: float = 0.02,
                 verbose: bool = False):

        self.sink = sink
        self.file_path: str = file_path
        self.sample_rate: int = sample_rate
        self.chunk_size: int = int(sample_rate * chunk_duration)
        self.verbose: bool = verbose

        self.chunks: List[bytes] = self._load_audio()

        self.is_running: bool = False
        self.finished = threading.Event()
        self.thread: threading.Thread | None = None

        if self.verbose:
            logging.info(f"FileAudioSource: loaded {len(self.chunks)} chunks from {file_path}")


    def _load_audio(self) -> List[bytes]:
        """Load the file and split it into PCM chunks."""
        import soundfile as sf

        audio, sr = sf.read(self.file_path, dtype='int16')

        if sr != self.sample_rate:
            raise ValueError(
                f"{self.file_path}: sample rate {sr}Hz does not match configured {self.sample_rate}Hz"
            )

        # Convert to mono if stereo (take first channel, matching AudioSource)
        if len(audio.shape) > 1:
            audio = audio[:, 0]

        chunks: List[bytes] = []
        for i in range(0, len(audio), self.chunk_size):
            chunk = audio[i:i + self.chunk_size]
            if len(chunk) < self.chunk_size:
                chunk = np.pad(chunk, (0, self.chunk_size - len(chunk)))
            chunks.append(chunk.astype('<i2').tobytes())

        return chunks


    def start(self) -> None:
        """Start feeding chunks to the sink from a background thread."""
        self.is_running = True
        self.finished.clear()
        self.thread = threading.Thread(target=self._feed_chunks, daemon=True)
        self.thread.start()

        if self.verbose:
            logging.info("FileAudioSource: started feeding chunks")


    def _feed_chunks(self) -> None:
        chunk_duration = self.chunk_size / self.sample_rate
        start_time = time.time()

        for i, chunk in enumerate(self.chunks):
            if not self.is_running:
                break

            sleep_time = start_time + (i * chunk_duration) - time.time()
            if sleep_time > 0:
                time.sleep(sleep_time)

            try:
                self.sink(chunk)
            except Exception as e:
                logging.error(f"FileAudioSource: sink failed: {e}")

        self.is_running = False
        self.finished.set()

        if self.verbose:
            logging.info("FileAudioSource: finished feeding all chunks")


    def stop(self) -> None:
        """Stop feeding and wait for the background thread (up to 1 second)."""
        self.is_running = False

        if self.thread:
            self.thread.join(timeout=1.0)

        if self.verbose:
            logging.info("FileAudioSource: stopped")
