import logging
from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from whatsconnect.infra.realtime.events import RealtimeEvent

logger = logging.getLogger(__name__)


class RealtimePublisher(Protocol):
    async def publish(
        self,
        channels: Sequence[str],
        event: RealtimeEvent,
        payload: Mapping[str, Any],
    ) -> None: ...


class NoopRealtimePublisher:
    async def publish(
        self,
        channels: Sequence[str],
        event: RealtimeEvent,
        payload: Mapping[str, Any],
    ) -> None:
        _ = channels
        _ = event
        _ = payload
        return None


async def safe_publish(
    publisher: RealtimePublisher,
    channels: Sequence[str],
    event: RealtimeEvent,
    payload: Mapping[str, Any],
) -> None:
    """Publish without letting a dashboard failure leak into the caller."""
    try:
        await publisher.publish(channels, event, payload)
    except Exception:
        logger.warning("Realtime publish of %s failed", event.value, exc_info=True)
