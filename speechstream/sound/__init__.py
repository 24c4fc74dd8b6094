from .AudioSource import AudioSource
from .FileAudioSource import FileAudioSource

__all__ = ['AudioSource', 'FileAudioSource']
