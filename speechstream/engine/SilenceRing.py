# speechstream/engine/SilenceRing.py
from collections import deque


class SilenceRing:
    """Bounded pre-roll of silent chunks captured while recording is off.

    The classifier tends to miss the very start of speech, so the last few
    silent chunks are kept and prepended to the first voiced chunk of the
    next utterance. Oldest chunks are evicted first once max_size is reached.

    Args:
        max_size: Maximum number of chunks retained (bufferSize)
    """

    def __init__(self, max_size: int = 3) -> None:
        if max_size < 1:
            raise ValueError(f"max_size must be positive, got {max_size}")
        self.max_size: int = max_size
        self._chunks: deque = deque(maxlen=max_size)

    def __len__(self) -> int:
        return len(self._chunks)

    def chunks(self) -> list[bytes]:
        return list(self._chunks)

    def push(self, chunk: bytes) -> None:
        self._chunks.append(chunk)

    def clear(self) -> None:
        self._chunks.clear()

    def reseed(self, chunk: bytes) -> None:
        """Replace the ring content with a single boundary chunk."""
        self._chunks.clear()
        self._chunks.append(chunk)

    def flush_with(self, chunk: bytes) -> bytes:
        """Concatenate buffered chunks and chunk in ring order, then empty the ring.

        Args:
            chunk: Chunk that triggered the flush (appended last)

        Returns:
            Combined audio buffer
        """
        if not self._chunks:
            return chunk
        combined = b"".join([*self._chunks, chunk])
        self._chunks.clear()
        return combined
