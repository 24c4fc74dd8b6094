from .ResultDispatcher import ResultDispatcher
from .SegmentationEngine import InactivityTimer, SegmentationEngine
from .SilenceRing import SilenceRing
from .WorkerSender import WorkerSender

__all__ = [
    'InactivityTimer',
    'ResultDispatcher',
    'SegmentationEngine',
    'SilenceRing',
    'WorkerSender',
]
