"""Realtime event transport (WebSocket) adapters."""

from whatsconnect.infra.realtime.hub import InMemoryRealtimeHub

__all__ = ["InMemoryRealtimeHub"]
