import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from typing import Any

from whatsconnect.infra.transport.events import TransportEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[Any], Awaitable[None]]


class TransportEventBus:
    """In-process fanout of typed transport events.

    Handlers run in subscription order. A failing handler is logged and
    skipped so one subscriber can never break the transport's dispatch loop.
    """

    def __init__(self) -> None:
        self._handlers: dict[type, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event_type: type, handler: EventHandler) -> Callable[[], None]:
        self._handlers[event_type].append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(event_type)
            if handlers is not None and handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def handler_count(self, event_type: type) -> int:
        return len(self._handlers.get(event_type, ()))

    async def publish(self, event: TransportEvent) -> None:
        for handler in list(self._handlers.get(type(event), ())):
            try:
                await handler(event)
            except Exception:
                logger.exception(
                    "Transport event handler %r failed for %s",
                    handler,
                    type(event).__name__,
                )
