# chat_core/infrastructure/event_dispatcher.py
import logging
from collections import defaultdict
from collections.abc import Callable

from chat_core.domain.events import Event


class EventDispatcher:
    """Runs the handlers registered for an event after the state change committed.

    Delivery is best-effort: a failing handler is logged and the remaining
    handlers still run; nothing propagates back to the caller.
    """

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.handlers: dict[str, list[Callable]] = defaultdict(list)
        self.logger = logger or logging.getLogger("ChatCore")

    def register(self, event_type: str, handler: Callable) -> None:
        self.handlers[event_type].append(handler)

    async def dispatch(self, event: Event) -> None:
        event_type = event.__class__.__name__
        for handler in self.handlers[event_type]:
            try:
                await handler(event)
            except Exception:
                self.logger.exception(
                    f"Delivery handler {getattr(handler, '__name__', handler)} failed for {event_type}"
                )
