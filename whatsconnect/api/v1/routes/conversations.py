from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from whatsconnect.api.v1.dependencies import get_realtime, get_sla_settings
from whatsconnect.core.db import get_db_session
from whatsconnect.infra.realtime.publisher import RealtimePublisher
from whatsconnect.schemas.conversation import (
    ContactResponse,
    ConversationListResponse,
    ConversationSummaryResponse,
)
from whatsconnect.services.conversation_service import ConversationService
from whatsconnect.services.errors import ContactNotFoundError

router = APIRouter()


async def get_conversation_service(
    session: AsyncSession = Depends(get_db_session),
    realtime: RealtimePublisher | None = Depends(get_realtime),
    sla: tuple[int, int] = Depends(get_sla_settings),
) -> ConversationService:
    threshold, urgent_window = sla
    return ConversationService(
        session=session,
        realtime=realtime,
        sla_threshold_minutes=threshold,
        urgent_window_minutes=urgent_window,
    )


@router.get("", response_model=ConversationListResponse)
async def list_conversations(
    service: ConversationService = Depends(get_conversation_service),
) -> ConversationListResponse:
    summaries = await service.list_conversations()
    return ConversationListResponse(
        items=[ConversationSummaryResponse.model_validate(summary) for summary in summaries]
    )


@router.post("/{contact_id}/read", response_model=ContactResponse)
async def mark_read(
    contact_id: UUID,
    service: ConversationService = Depends(get_conversation_service),
) -> ContactResponse:
    try:
        contact = await service.mark_read(contact_id)
    except ContactNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return ContactResponse.model_validate(contact)
