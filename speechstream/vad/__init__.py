from .VoiceActivityClassifier import VAD_MODE_THRESHOLDS, VoiceActivityClassifier

__all__ = [
    'VAD_MODE_THRESHOLDS',
    'VoiceActivityClassifier',
]
