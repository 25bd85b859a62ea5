from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from whatsconnect.domain.enums import QueryStatus, SentimentLabel
from whatsconnect.schemas.message import MessageResponse


class ContactResponse(BaseModel):
    id: UUID
    phone: str
    display_name: str
    unread_count: int
    query_status: QueryStatus
    last_contacted_at: datetime | None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SlaWindowResponse(BaseModel):
    overdue: bool
    minutes: int
    urgent: bool
    text: str

    model_config = ConfigDict(from_attributes=True)


class ConversationSummaryResponse(BaseModel):
    contact: ContactResponse
    last_message: MessageResponse
    message_count: int
    unread_count: int
    sla: SlaWindowResponse | None
    latest_sentiment: SentimentLabel

    model_config = ConfigDict(from_attributes=True)


class ConversationListResponse(BaseModel):
    items: list[ConversationSummaryResponse]
