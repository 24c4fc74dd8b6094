"""Event emitter with thread-safe handler management.

The segmentation engine publishes its events (connect, recording, vad,
recognize, hotword, no-recognition) through this emitter so that it stays
isolated from the embedding application.
"""

import threading
import logging
from typing import Any, Callable, Dict, List


class EventEmitter:
    """Manages named event handlers and dispatches events to them.

    Thread Safety:
        - Handler registration uses a lock
        - The handler list is copied before iteration (lock released during callbacks)

    Error Handling:
        - Each handler call is wrapped in try-except
        - Exceptions are logged and do not affect other handlers

    Example:
        >>> emitter = EventEmitter()
        >>> emitter.on('recognize', lambda text, stats: print(text))
        >>> emitter.emit('recognize', 'hello', stats)
    """

    def __init__(self, verbose: bool = False) -> None:
        self._handlers: Dict[str, List[Callable[..., Any]]] = {}
        self._lock: threading.Lock = threading.Lock()
        self._verbose: bool = verbose

    def on(self, event: str, handler: Callable[..., Any]) -> None:
        """Register a handler for event.

        Idempotent - registering the same handler twice has no additional effect.

        Args:
            event: Event name
            handler: Callable receiving the event arguments
        """
        with self._lock:
            handlers = self._handlers.setdefault(event, [])
            if handler not in handlers:
                handlers.append(handler)
                if self._verbose:
                    logging.debug(f"EventEmitter: handler registered for '{event}'")

    def off(self, event: str, handler: Callable[..., Any]) -> None:
        """Unregister a handler. Unregistering an unknown handler is a no-op."""
        with self._lock:
            handlers = self._handlers.get(event, [])
            if handler in handlers:
                handlers.remove(handler)

    def emit(self, event: str, *args: Any) -> None:
        """Call every handler registered for event with args.

        Args:
            event: Event name
            *args: Positional arguments passed to each handler
        """
        with self._lock:
            handlers = list(self._handlers.get(event, []))

        for handler in handlers:
            try:
                handler(*args)
            except Exception as e:
                logging.error(
                    f"Handler {getattr(handler, '__name__', handler)!r} failed on '{event}': {e}",
                    exc_info=True
                )

    def handler_count(self, event: str) -> int:
        with self._lock:
            return len(self._handlers.get(event, []))
