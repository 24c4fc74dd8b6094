"""Registry of speech services keyed by a stable service id.

Replaces a module-level instance map: callers hold a registry object and
create or look up services through it explicitly.
"""

import logging
import threading
from typing import Callable, TYPE_CHECKING

from speechstream.SpeechConfig import SpeechConfig

if TYPE_CHECKING:
    from speechstream.SpeechService import SpeechService

logger = logging.getLogger(__name__)

ServiceFactory = Callable[[str, SpeechConfig], "SpeechService"]


def _default_factory(service_id: str, config: SpeechConfig) -> "SpeechService":
    from speechstream.SpeechService import SpeechService
    return SpeechService(service_id=service_id, config=config)


class SpeechServiceRegistry:
    """Creates, looks up and destroys SpeechService instances.

    Args:
        factory: Callable building a service from (service_id, config).
    """

    def __init__(self, factory: ServiceFactory = _default_factory) -> None:
        self._factory = factory
        self._services: dict[str, "SpeechService"] = {}
        self._lock = threading.Lock()

    @staticmethod
    def service_id(config: SpeechConfig) -> str:
        return f"onnx-asr:{config.model_name}"

    def __contains__(self, service_id: str) -> bool:
        with self._lock:
            return service_id in self._services

    def __len__(self) -> int:
        with self._lock:
            return len(self._services)

    def get(self, service_id: str) -> "SpeechService | None":
        with self._lock:
            return self._services.get(service_id)

    def create(self, service_id: str, config: SpeechConfig) -> "SpeechService":
        """Create and register a new service.

        Raises:
            KeyError: If a service with service_id already exists.
        """
        with self._lock:
            if service_id in self._services:
                raise KeyError(f"speech service already exists: {service_id}")
            service = self._factory(service_id, config)
            self._services[service_id] = service

        logger.info("SpeechServiceRegistry: service created id=%s", service_id)
        return service

    def get_or_create(self, service_id: str, config: SpeechConfig) -> tuple["SpeechService", bool]:
        """Return the existing service for service_id or create one.

        Returns:
            Tuple of (service, created).
        """
        with self._lock:
            existing = self._services.get(service_id)
            if existing is not None:
                return existing, False
            service = self._factory(service_id, config)
            self._services[service_id] = service

        logger.info("SpeechServiceRegistry: service created id=%s", service_id)
        return service, True

    def remove(self, service_id: str) -> "SpeechService | None":
        """Unregister a service without destroying it."""
        with self._lock:
            return self._services.pop(service_id, None)

    def destroy_all(self) -> None:
        """Destroy and unregister every service."""
        with self._lock:
            items = list(self._services.items())
            self._services.clear()

        for service_id, service in items:
            try:
                service.destroy()
            except Exception:
                logger.exception("SpeechServiceRegistry: error destroying service %s", service_id)

        logger.info("SpeechServiceRegistry: all services destroyed")
