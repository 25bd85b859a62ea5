import asyncio
import logging
from collections import defaultdict
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from typing import Any

from fastapi import WebSocket
from starlette.websockets import WebSocketDisconnect

from whatsconnect.infra.realtime.events import RealtimeEvent

logger = logging.getLogger(__name__)


def build_envelope(event: str, channel: str | None, payload: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "event": event,
        "channel": channel,
        "payload": dict(payload),
        "sent_at": datetime.now(UTC).isoformat(),
    }


class InMemoryRealtimeHub:
    """Fans CRM events out to dashboard websockets subscribed to channels."""

    def __init__(self) -> None:
        self._channel_subscribers: dict[str, set[WebSocket]] = defaultdict(set)
        self._socket_channels: dict[WebSocket, set[str]] = defaultdict(set)
        self._lock = asyncio.Lock()

    def subscriber_count(self, channel: str) -> int:
        return len(self._channel_subscribers.get(channel, ()))

    async def subscribe(self, websocket: WebSocket, channel: str) -> None:
        async with self._lock:
            self._channel_subscribers[channel].add(websocket)
            self._socket_channels[websocket].add(channel)

    async def unsubscribe(self, websocket: WebSocket, channel: str) -> None:
        async with self._lock:
            self._forget(websocket, channel)

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            for channel in list(self._socket_channels.get(websocket, ())):
                self._forget(websocket, channel)

    async def publish(
        self,
        channels: Sequence[str],
        event: RealtimeEvent,
        payload: Mapping[str, Any],
    ) -> None:
        unique_channels = [channel for channel in dict.fromkeys(channels) if channel]
        if not unique_channels:
            return

        async with self._lock:
            recipients_by_channel = {
                channel: set(self._channel_subscribers.get(channel, ()))
                for channel in unique_channels
            }

        stale: list[tuple[WebSocket, str]] = []
        for channel, recipients in recipients_by_channel.items():
            envelope = build_envelope(event.value, channel, payload)
            for websocket in recipients:
                try:
                    await websocket.send_json(envelope)
                except (RuntimeError, WebSocketDisconnect):
                    stale.append((websocket, channel))

        if stale:
            logger.debug("Dropping %d stale realtime subscription(s)", len(stale))
            async with self._lock:
                for websocket, channel in stale:
                    self._forget(websocket, channel)

    def _forget(self, websocket: WebSocket, channel: str) -> None:
        subscribers = self._channel_subscribers.get(channel)
        if subscribers is not None:
            subscribers.discard(websocket)
            if not subscribers:
                self._channel_subscribers.pop(channel, None)

        channels = self._socket_channels.get(websocket)
        if channels is not None:
            channels.discard(channel)
            if not channels:
                self._socket_channels.pop(websocket, None)
