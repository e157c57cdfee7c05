"""
In-process event dispatcher

Constructed per request and passed to the components that emit events;
there is no process-wide emitter. Listener failures are logged and never
reach the publisher.
"""
import logging
from collections import defaultdict
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

Listener = Callable[[str, Dict[str, Any]], None]

ALL_EVENTS = "*"


class EventDispatcher:

    def __init__(self):
        self._listeners: Dict[str, List[Listener]] = defaultdict(list)
        self.published: List[str] = []

    def subscribe(self, event_name: str, listener: Listener) -> None:
        self._listeners[event_name].append(listener)

    def publish(self, event_name: str, payload: Dict[str, Any]) -> None:
        self.published.append(event_name)
        listeners = self._listeners.get(event_name, []) + self._listeners.get(ALL_EVENTS, [])
        for listener in listeners:
            try:
                listener(event_name, payload)
            except Exception:
                logger.exception(f"Listener {listener!r} failed for event '{event_name}'")
