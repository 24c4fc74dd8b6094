"""Exception types shared by the segmentation engine and the decode worker."""


class SpeechStreamError(Exception):
    """Base class for speechstream errors."""


class ProtocolViolation(SpeechStreamError):
    """Session-lifecycle contract broken inside the decode worker.

    Fatal: the worker process must terminate and be restarted by its supervisor.
    """


class WorkerUnavailable(SpeechStreamError):
    """A message could not be delivered to the decode worker process."""
