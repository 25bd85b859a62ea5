from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from whatsconnect.domain.enums import DeliveryStatus, MessageDirection, SentimentLabel


class SendMessageRequest(BaseModel):
    # Left loosely typed so blank values reach the send validation and its messages.
    phone: str | None = None
    message: str | None = Field(default=None, max_length=4096)
    contact_id: UUID | None = None


class MessageResponse(BaseModel):
    id: UUID
    contact_id: UUID | None
    phone: str
    direction: MessageDirection
    body: str
    timestamp: datetime
    delivery_status: DeliveryStatus
    sentiment_label: SentimentLabel
    sentiment_score: float
    provider_message_id: str | None = None

    model_config = ConfigDict(from_attributes=True)


class SendMessageResponse(BaseModel):
    success: bool = True
    message_id: str
    message: str
    stored: MessageResponse | None = None


class MessageListResponse(BaseModel):
    items: list[MessageResponse]


class MessageStatsResponse(BaseModel):
    total: int
    inbound: int
    outbound: int
    today: int

    model_config = ConfigDict(from_attributes=True)
