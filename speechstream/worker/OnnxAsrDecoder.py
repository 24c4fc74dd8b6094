# speechstream/worker/OnnxAsrDecoder.py
from __future__ import annotations
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from onnx_asr.adapters import TextResultsAsrAdapter


class DecodeSession(Protocol):
    """Streaming decode handle valid for exactly one utterance."""

    def feed(self, audio: bytes) -> None: ...

    def finish(self) -> str: ...


class DecoderModel(Protocol):
    """Loaded model able to open decode sessions."""

    def create_session(self) -> DecodeSession: ...


@dataclass(frozen=True)
class ModelArtifacts:
    """Files that make up one decoder model.

    Attributes:
        model_dir: Directory with the ONNX inference graphs (encoder/decoder) and vocabulary
        config_path: Co-located model config read by onnx_asr
    """
    model_dir: Path
    config_path: Path


def resolve_model_artifacts(base_path: str | Path) -> ModelArtifacts:
    """Derive model artifact paths from a single base path.

    The base path names the model directory; the config is expected next to
    the graphs inside it.

    Args:
        base_path: Model base path passed to the worker at startup

    Returns:
        ModelArtifacts for the base path

    Raises:
        FileNotFoundError: If the model directory or its config is missing
    """
    model_dir = Path(base_path)
    artifacts = ModelArtifacts(model_dir=model_dir, config_path=model_dir / "config.json")

    if not artifacts.model_dir.is_dir():
        raise FileNotFoundError(
            f"Decoder model not found at {artifacts.model_dir}. "
            f"Run 'python download_model.py' to download it."
        )
    if not artifacts.config_path.exists():
        raise FileNotFoundError(f"Decoder model config not found at {artifacts.config_path}")
    return artifacts


def pcm16_to_float32(audio: bytes) -> np.ndarray:
    """Convert little-endian 16-bit PCM bytes to float32 samples in [-1, 1)."""
    samples = np.frombuffer(audio, dtype="<i2")
    return samples.astype(np.float32) / 32768.0


class OnnxAsrSession:
    """Accumulates PCM for one utterance and decodes it on finish().

    Args:
        model: onnx_asr model adapter with a recognize() method
        sample_rate: Sample rate of the fed audio in Hz
    """

    def __init__(self, model: "TextResultsAsrAdapter", sample_rate: int) -> None:
        self._model = model
        self._sample_rate = sample_rate
        self._chunks: list[bytes] = []

    def feed(self, audio: bytes) -> None:
        self._chunks.append(bytes(audio))

    def finish(self) -> str:
        """Decode all fed audio.

        Returns:
            Decoded text, "" when nothing was fed
        """
        if not self._chunks:
            return ""
        waveform = pcm16_to_float32(b"".join(self._chunks))
        self._chunks = []
        text = self._model.recognize(waveform, sample_rate=self._sample_rate)
        return text or ""


class OnnxAsrDecoderModel:
    """Decoder backend built on onnx_asr.

    Args:
        model_name: onnx_asr model identifier (e.g. "nemo-parakeet-tdt-0.6b-v3")
        artifacts: Resolved model artifacts
        sample_rate: Sample rate of the audio fed to sessions
        quantization: Optional onnx_asr quantization suffix (e.g. "int8")
    """

    def __init__(self,
                 model_name: str,
                 artifacts: ModelArtifacts,
                 sample_rate: int = 16000,
                 quantization: str | None = None) -> None:
        import onnx_asr

        self.model_name = model_name
        self.sample_rate = sample_rate
        self._model = onnx_asr.load_model(
            model_name,
            str(artifacts.model_dir),
            quantization=quantization,
            providers=["CPUExecutionProvider"],
        )
        logging.info(f"OnnxAsrDecoderModel: loaded {model_name} from {artifacts.model_dir}")

    def create_session(self) -> OnnxAsrSession:
        return OnnxAsrSession(self._model, self.sample_rate)
