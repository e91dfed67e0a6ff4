# handoff/event_bus.py
from typing import Any, Callable, Dict

from utils.logger import logger

class EventBus:
    """
    Lightweight pub/sub between the trading client and the engine.
    """

    def __init__(self) -> None:
        self._subs: Dict[str, list[Callable[[Any], None]]] = {}

    def subscribe(self, topic: str, handler: Callable[[Any], None]) -> None:
        """Register a synchronous callback; wrap async handlers externally."""
        self._subs.setdefault(topic, []).append(handler)

    def unsubscribe(self, topic: str, handler: Callable[[Any], None]) -> None:
        handlers = self._subs.get(topic, [])
        if handler in handlers:
            handlers.remove(handler)

    def publish(self, topic: str, payload: Any = None) -> None:
        """Publish an event to subscribers (fire-and-forget)."""
        for h in list(self._subs.get(topic, [])):
            try:
                h(payload)
            except Exception:
                logger.exception(f"EventBus handler {getattr(h, '__qualname__', h)} failed on {topic}")

# Common topics
TOPIC_WEB_SESSION = "session.web"
TOPIC_SESSION_FAILED = "session.failed"
TOPIC_SENT_OFFER_CHANGED = "offer.sent_changed"
