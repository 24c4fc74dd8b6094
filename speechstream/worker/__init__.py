from .DecodeWorker import DecodeWorker
from .WorkerProcess import WorkerProcess, run_worker, serve_connection

__all__ = [
    'DecodeWorker',
    'WorkerProcess',
    'run_worker',
    'serve_connection',
]
