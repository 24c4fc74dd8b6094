# speechstream/vad/VoiceActivityClassifier.py
import logging
import onnxruntime
import numpy as np
from typing import Dict, Optional, Union
from pathlib import Path

from speechstream.types import VadVerdict

# vadMode -> speech probability threshold
VAD_MODE_THRESHOLDS: Dict[str, float] = {
    'NORMAL': 0.3,
    'LOW_BITRATE': 0.4,
    'AGGRESSIVE': 0.5,
    'VERY_AGGRESSIVE': 0.6,
}

# Silero frame size in samples per supported sample rate
FRAME_SIZES: Dict[int, int] = {
    8000: 256,
    16000: 512,
}


class VoiceActivityClassifier:
    """Classifies audio chunks as VOICE, SILENCE, NOISE or ERROR.

    Uses the Silero VAD ONNX model loaded with ONNX Runtime. Audio is cut
    into model frames (512 samples at 16kHz, 256 at 8kHz). Samples left over
    from one chunk are carried into the next, so the stateful model only
    sees real audio. The highest speech probability of a chunk decides:
    - prob >= threshold: VOICE
    - threshold - noise_margin <= prob < threshold: NOISE
    - otherwise: SILENCE
    Malformed input, unsupported sample rates and inference failures yield
    ERROR instead of raising.

    Args:
        model_path: Absolute path to the Silero VAD ONNX model file
        vad_mode: Aggressiveness level, key of VAD_MODE_THRESHOLDS
        noise_margin: Width of the probability band reported as NOISE
        verbose: Enable detailed logging for debugging (default: False)
    """

    def __init__(self,
                 model_path: Path,
                 vad_mode: str = 'VERY_AGGRESSIVE',
                 noise_margin: float = 0.05,
                 verbose: bool = False):
        if vad_mode not in VAD_MODE_THRESHOLDS:
            raise ValueError(f"Unknown vad_mode {vad_mode!r}")

        self.model_path = Path(model_path)
        self.vad_mode: str = vad_mode
        self.threshold: float = VAD_MODE_THRESHOLDS[vad_mode]
        self.noise_margin: float = noise_margin
        self.verbose = verbose

        self.model: Optional[onnxruntime.InferenceSession] = None
        self.model_state: Optional[np.ndarray] = None
        self._pending: np.ndarray = np.zeros(0, dtype=np.float32)
        self._pending_rate: Optional[int] = None
        self._last_probability: float = 0.0
        self._load_model()


    def _load_model(self) -> None:
        """Load Silero VAD ONNX model from local path.

        Initializes the model state tensor for stateful inference.
        """
        if not self.model_path.exists():
            raise FileNotFoundError(
                f"Silero VAD model not found at {self.model_path}. "
                f"Run 'python download_model.py' to download it."
            )

        try:
            sess_options = onnxruntime.SessionOptions()
            sess_options.graph_optimization_level = onnxruntime.GraphOptimizationLevel.ORT_ENABLE_ALL
            sess_options.intra_op_num_threads = 1  # Single thread for small model
            sess_options.inter_op_num_threads = 1

            self.model = onnxruntime.InferenceSession(
                str(self.model_path),
                sess_options=sess_options,
                providers=['CPUExecutionProvider']
            )

            # Model state (2, batch_size, 128), batch_size = 1 for a single stream
            self.model_state = np.zeros((2, 1, 128), dtype=np.float32)

        except Exception as e:
            raise RuntimeError(f"Failed to load Silero VAD ONNX model: {e}")


    def reset_state(self) -> None:
        """Reset ONNX model internal state and buffered samples between streams."""
        if self.model_state is not None:
            self.model_state = np.zeros((2, 1, 128), dtype=np.float32)
        self._pending = np.zeros(0, dtype=np.float32)
        self._last_probability = 0.0


    def classify(self, audio: Union[bytes, np.ndarray], sample_rate: int = 16000) -> VadVerdict:
        """Classify one audio chunk.

        Args:
            audio: 16-bit PCM mono bytes, or float32 samples in [-1, 1]
            sample_rate: Sample rate in Hz (8000 or 16000)

        Returns:
            VadVerdict for the chunk
        """
        frame_size = FRAME_SIZES.get(sample_rate)
        if frame_size is None:
            logging.warning(f"VoiceActivityClassifier: unsupported sample rate {sample_rate}")
            return VadVerdict.ERROR

        samples = self._to_float32(audio)
        if samples is None or samples.size == 0:
            return VadVerdict.ERROR

        try:
            speech_prob = self.speech_probability(samples, sample_rate, frame_size)
        except Exception as e:
            logging.error(f"VoiceActivityClassifier: inference failed: {e}")
            self._pending = np.zeros(0, dtype=np.float32)
            return VadVerdict.ERROR

        if self.verbose:
            logging.debug(f"VoiceActivityClassifier: speech_prob={speech_prob:.3f}")

        if speech_prob >= self.threshold:
            return VadVerdict.VOICE
        if speech_prob >= self.threshold - self.noise_margin:
            return VadVerdict.NOISE
        return VadVerdict.SILENCE


    def speech_probability(self, samples: np.ndarray, sample_rate: int, frame_size: int) -> float:
        """Run the model over every complete frame and return the highest probability.

        Samples that do not fill a frame are kept and prefixed to the next
        chunk. A chunk that completes no frame reports the probability of
        the last frame that was run.
        """
        if sample_rate != self._pending_rate:
            self.reset_state()
            self._pending_rate = sample_rate

        buffered = np.concatenate((self._pending, samples))
        whole = buffered.size - buffered.size % frame_size
        self._pending = buffered[whole:].copy()
        if whole == 0:
            return self._last_probability

        sr_input = np.array([sample_rate], dtype=np.int64)
        best = 0.0
        for frame in buffered[:whole].reshape(-1, frame_size):
            ort_outputs = self.model.run(
                None,
                {
                    'input': frame.reshape(1, -1),
                    'state': self.model_state,
                    'sr': sr_input
                }
            )
            prob = float(ort_outputs[0][0][0])
            best = max(best, prob)
            self.model_state = ort_outputs[1]
        self._last_probability = prob
        return best


    @staticmethod
    def _to_float32(audio: Union[bytes, np.ndarray]) -> Optional[np.ndarray]:
        if isinstance(audio, np.ndarray):
            return audio.astype(np.float32, copy=False).reshape(-1)
        if len(audio) % 2:
            logging.warning(f"VoiceActivityClassifier: odd PCM buffer length {len(audio)}")
            return None
        return np.frombuffer(audio, dtype='<i2').astype(np.float32) / 32768.0
