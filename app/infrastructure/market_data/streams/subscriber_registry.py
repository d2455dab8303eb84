"""Registry for simulation state subscribers."""
import logging
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)


class SubscriberRegistry:
    def __init__(self):
        self._subscribers: Dict[str, List[Callable[[Any], None]]] = {}

    def subscribe(self, topic: str, handler: Callable[[Any], None]) -> Callable[[], None]:
        """Register a handler; the returned callable removes it again."""
        self._subscribers.setdefault(topic, []).append(handler)

        def unsubscribe() -> None:
            handlers = self._subscribers.get(topic, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def publish(self, topic: str, event: Any) -> None:
        # one failing subscriber must not starve the others
        for handler in list(self._subscribers.get(topic, [])):
            try:
                handler(event)
            except Exception:
                logger.exception("Subscriber for %s failed", topic)

    def count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, []))
