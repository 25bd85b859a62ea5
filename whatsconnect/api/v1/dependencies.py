from fastapi import HTTPException, Request, status

from whatsconnect.core.config import get_settings
from whatsconnect.infra.realtime.publisher import RealtimePublisher
from whatsconnect.services.connection_manager import ConnectionManager


def get_connection_manager(request: Request) -> ConnectionManager:
    manager = getattr(request.app.state, "connection_manager", None)
    if manager is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Messaging session is not initialized",
        )
    return manager


def get_realtime(request: Request) -> RealtimePublisher | None:
    return getattr(request.app.state, "realtime_hub", None)


def get_sla_settings() -> tuple[int, int]:
    settings = get_settings()
    return settings.sla_threshold_minutes, settings.sla_urgent_window_minutes
