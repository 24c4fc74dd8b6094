"""Configuration loading and validation for the speech service."""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict

VAD_MODES: tuple[str, ...] = ("NORMAL", "LOW_BITRATE", "AGGRESSIVE", "VERY_AGGRESSIVE")
SUPPORTED_SAMPLE_RATES: tuple[int, ...] = (8000, 16000)

# camelCase option name -> SpeechConfig field
_OPTION_FIELDS: Dict[str, str] = {
    'modelName': 'model_name',
    'modelPath': 'model_path',
    'vadModelPath': 'vad_model_path',
    'vadMode': 'vad_mode',
    'silenceThreshold': 'silence_threshold',
    'bufferSize': 'buffer_size',
    'sampleRate': 'sample_rate',
    'chunkDuration': 'chunk_duration',
    'inactivityTimeout': 'inactivity_timeout',
    'queueSize': 'queue_size',
    'spuriousTokens': 'spurious_tokens',
    'debug': 'debug',
    'debugProcess': 'debug_process',
}


@dataclass
class SpeechConfig:
    """Recognized speech service options.

    Attributes:
        model_name: Decoder model identifier (also used as the service id suffix)
        model_path: Decoder model artifact base path
        vad_model_path: Path to the Silero VAD ONNX model file
        vad_mode: Classifier aggressiveness, one of VAD_MODES
        silence_threshold: Trailing silence (ms) that ends an utterance
        buffer_size: Pre-roll chunks kept while idle
        sample_rate: Audio sample rate in Hz
        chunk_duration: Capture chunk duration in seconds
        inactivity_timeout: Milliseconds without audio before a forced reset
        queue_size: Bound of the engine input queue
        spurious_tokens: Exact decoded texts dropped as decoder artifacts
        debug: Verbose engine logging and console trace
        debug_process: Verbose logging inside the decode worker process
    """
    model_name: str = "nemo-parakeet-tdt-0.6b-v3"
    model_path: str = "./models/parakeet"
    vad_model_path: str = "./models/silero_vad/silero_vad.onnx"
    vad_mode: str = "VERY_AGGRESSIVE"
    silence_threshold: float = 200
    buffer_size: int = 3
    sample_rate: int = 16000
    chunk_duration: float = 0.02
    inactivity_timeout: float = 1000
    queue_size: int = 200
    spurious_tokens: tuple[str, ...] = field(default_factory=lambda: ("he",))
    debug: bool = False
    debug_process: bool = False

    def __post_init__(self):
        """Validate option values.

        Raises:
            ValueError: On unknown vad_mode, unsupported sample_rate or non-positive sizes
        """
        if self.vad_mode not in VAD_MODES:
            raise ValueError(f"Invalid vadMode {self.vad_mode!r}: must be one of {', '.join(VAD_MODES)}")
        if self.sample_rate not in SUPPORTED_SAMPLE_RATES:
            raise ValueError(f"Invalid sampleRate {self.sample_rate}: must be one of {SUPPORTED_SAMPLE_RATES}")
        if self.silence_threshold < 0:
            raise ValueError(f"silenceThreshold must be >= 0, got {self.silence_threshold}")
        for name in ('buffer_size', 'queue_size', 'chunk_duration', 'inactivity_timeout'):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        self.spurious_tokens = tuple(self.spurious_tokens)

    @classmethod
    def from_dict(cls, options: Dict[str, Any]) -> "SpeechConfig":
        """Build a config from camelCase options; unknown keys are rejected.

        Raises:
            ValueError: On unknown option names or invalid values
        """
        unknown = sorted(set(options) - set(_OPTION_FIELDS))
        if unknown:
            raise ValueError(f"Unknown config options: {', '.join(unknown)}")
        return cls(**{_OPTION_FIELDS[key]: value for key, value in options.items()})

    def to_dict(self) -> Dict[str, Any]:
        result = {key: getattr(self, name) for key, name in _OPTION_FIELDS.items()}
        result['spuriousTokens'] = list(self.spurious_tokens)
        return result


def load_config(config_path: str | Path) -> Dict[str, Any]:
    """Load configuration from JSON file.

    Args:
        config_path: Path to speech_config.json

    Returns:
        Configuration dictionary
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)
