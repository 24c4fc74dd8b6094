# speechstream/__init__.py
from .EventEmitter import EventEmitter
from .SpeechConfig import SpeechConfig, load_config
from .SpeechService import SpeechService
from .SpeechServiceRegistry import SpeechServiceRegistry
from .types import RecognitionResult, RecognitionStats, RecordingState, VadState, VadVerdict

__all__ = [
    'EventEmitter',
    'RecognitionResult',
    'RecognitionStats',
    'RecordingState',
    'SpeechConfig',
    'SpeechService',
    'SpeechServiceRegistry',
    'VadState',
    'VadVerdict',
    'load_config',
]
