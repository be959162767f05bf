from __future__ import annotations

import logging
from collections import Counter, defaultdict
from threading import Lock
from typing import Any, Callable

logger = logging.getLogger(__name__)

Handler = Callable[[dict[str, Any]], None]


class EventBus:
    """Barramento síncrono em processo. Handler com erro é logado e não derruba quem emitiu."""

    def __init__(self) -> None:
        self._subscribers: dict[str, list[Handler]] = defaultdict(list)
        self._failures: Counter = Counter()
        self._lock = Lock()

    def subscribe(self, event_name: str, handler: Handler) -> None:
        with self._lock:
            subscribers = self._subscribers[event_name]
            if handler not in subscribers:
                subscribers.append(handler)

    def unsubscribe(self, event_name: str, handler: Handler) -> None:
        with self._lock:
            subscribers = self._subscribers.get(event_name) or []
            if handler in subscribers:
                subscribers.remove(handler)

    def handlers_for(self, event_name: str) -> list[Handler]:
        with self._lock:
            return list(self._subscribers.get(event_name, ()))

    def emit(self, event_name: str, payload: dict[str, Any]) -> int:
        """Entrega o payload a cada handler; retorna quantos concluíram sem erro."""
        delivered = 0
        for handler in self.handlers_for(event_name):
            try:
                handler(payload)
            except Exception:
                with self._lock:
                    self._failures[event_name] += 1
                logger.exception("[EVENTS] handler %s failed for %s", getattr(handler, "__name__", handler), event_name)
            else:
                delivered += 1
        if not delivered:
            logger.debug("[EVENTS] %s delivered to no handler", event_name)
        return delivered

    def failure_counts(self) -> dict[str, int]:
        with self._lock:
            return dict(self._failures)


event_bus = EventBus()
