"""Process-wide logging setup with an event correlation id.

Inbound transport events and outbound sends run as independent asyncio
tasks. ``set_event_id`` binds an id to the current task context so every
record emitted while handling it carries ``%(event_id)s``.
"""

import logging
from contextvars import ContextVar

_event_id: ContextVar[str] = ContextVar("event_id", default="-")

LOG_FORMAT = "%(asctime)s %(levelname)s [%(event_id)s] %(name)s: %(message)s"


def set_event_id(event_id: str | None) -> None:
    _event_id.set(event_id or "-")


class EventIdFilter(logging.Filter):
    """Injects the current event id into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.event_id = _event_id.get()  # type: ignore[attr-defined]
        return True


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    root.setLevel(level.upper())

    if not any(getattr(handler, "_whatsconnect", False) for handler in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler.addFilter(EventIdFilter())
        handler._whatsconnect = True  # type: ignore[attr-defined]
        root.addHandler(handler)
