import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from whatsconnect.api.v1.dependencies import get_connection_manager, get_realtime
from whatsconnect.core.db import get_db_session
from whatsconnect.domain.enums import SendFailure
from whatsconnect.infra.realtime.publisher import RealtimePublisher
from whatsconnect.schemas.common import CommandResponse
from whatsconnect.schemas.message import (
    MessageResponse,
    SendMessageRequest,
    SendMessageResponse,
)
from whatsconnect.schemas.session import PairingResponse, SessionStatusResponse
from whatsconnect.services.connection_manager import ConnectionManager
from whatsconnect.services.errors import NotReadyError, SendError, SendValidationError
from whatsconnect.services.outbound_service import (
    SEND_SUCCESS_MESSAGE,
    OutboundMessageService,
)

logger = logging.getLogger(__name__)

router = APIRouter()

_SEND_FAILURE_STATUS = {
    SendFailure.NOT_REGISTERED: status.HTTP_400_BAD_REQUEST,
    SendFailure.SESSION_LOST: status.HTTP_503_SERVICE_UNAVAILABLE,
    SendFailure.TIMEOUT: status.HTTP_504_GATEWAY_TIMEOUT,
    SendFailure.RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
    SendFailure.UNKNOWN: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


async def get_outbound_service(
    manager: ConnectionManager = Depends(get_connection_manager),
    realtime: RealtimePublisher | None = Depends(get_realtime),
    session: AsyncSession = Depends(get_db_session),
) -> OutboundMessageService:
    return OutboundMessageService(session=session, dispatcher=manager, realtime=realtime)


def _raise_for_service_error(exc: Exception) -> None:
    if isinstance(exc, (NotReadyError, SendValidationError)):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    if isinstance(exc, SendError):
        raise HTTPException(status_code=_SEND_FAILURE_STATUS[exc.category], detail=str(exc)) from exc
    raise exc


@router.get("/status", response_model=SessionStatusResponse)
async def get_status(
    manager: ConnectionManager = Depends(get_connection_manager),
) -> SessionStatusResponse:
    current = manager.get_status()
    return SessionStatusResponse(
        connected=current.connected,
        has_pairing_code=current.has_pairing_code,
        state=current.state,
        retry_count=current.retry_count,
        last_error=current.last_error,
    )


@router.get("/qr", response_model=PairingResponse, response_model_exclude_none=True)
async def get_pairing_code(
    format: str | None = Query(default=None),
    manager: ConnectionManager = Depends(get_connection_manager),
) -> PairingResponse:
    artifact = await manager.get_pairing_artifact(want_image=format == "image")
    return PairingResponse(
        pairing_image=artifact.pairing_image,
        pairing_code=artifact.pairing_code,
        status=artifact.status,
    )


@router.post("/send", response_model=SendMessageResponse)
async def send_message(
    payload: SendMessageRequest,
    service: OutboundMessageService = Depends(get_outbound_service),
) -> SendMessageResponse:
    try:
        result = await service.send(
            phone=payload.phone,
            body=payload.message,
            contact_id=payload.contact_id,
        )
    except (NotReadyError, SendValidationError, SendError) as exc:
        _raise_for_service_error(exc)

    return SendMessageResponse(
        message_id=result.message_id,
        message=SEND_SUCCESS_MESSAGE,
        stored=MessageResponse.model_validate(result.message) if result.message else None,
    )


@router.post("/disconnect", response_model=CommandResponse)
async def disconnect(
    manager: ConnectionManager = Depends(get_connection_manager),
) -> CommandResponse:
    try:
        await manager.disconnect()
    except Exception:
        logger.exception("Error during disconnect")
        return CommandResponse(message="Disconnected (with cleanup errors). Reinitializing...")
    return CommandResponse(message="Disconnected successfully. Reinitializing...")


@router.post("/reconnect", response_model=CommandResponse)
async def reconnect(
    manager: ConnectionManager = Depends(get_connection_manager),
) -> CommandResponse:
    await manager.reconnect()
    return CommandResponse(message="Reinitializing WhatsApp connection...")
