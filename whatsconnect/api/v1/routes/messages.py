from uuid import UUID

from fastapi import APIRouter, Depends

from whatsconnect.api.v1.routes.conversations import get_conversation_service
from whatsconnect.schemas.message import (
    MessageListResponse,
    MessageResponse,
    MessageStatsResponse,
)
from whatsconnect.services.conversation_service import ConversationService

router = APIRouter()


@router.get("/contact/{contact_id}", response_model=MessageListResponse)
async def list_contact_messages(
    contact_id: UUID,
    service: ConversationService = Depends(get_conversation_service),
) -> MessageListResponse:
    messages = await service.list_messages_for_contact(contact_id)
    return MessageListResponse(items=[MessageResponse.model_validate(m) for m in messages])


@router.get("/phone/{phone}", response_model=MessageListResponse)
async def list_phone_messages(
    phone: str,
    service: ConversationService = Depends(get_conversation_service),
) -> MessageListResponse:
    messages = await service.list_messages_for_phone(phone)
    return MessageListResponse(items=[MessageResponse.model_validate(m) for m in messages])


@router.get("/stats/summary", response_model=MessageStatsResponse)
async def message_stats(
    service: ConversationService = Depends(get_conversation_service),
) -> MessageStatsResponse:
    stats = await service.message_stats()
    return MessageStatsResponse.model_validate(stats)
