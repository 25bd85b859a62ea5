import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from whatsconnect.domain.enums import MessageDirection, SentimentLabel
from whatsconnect.domain.phone import digits_only
from whatsconnect.domain.sla import (
    DEFAULT_THRESHOLD_MINUTES,
    DEFAULT_URGENT_WINDOW_MINUTES,
    SlaWindow,
    compute_sla_window,
)
from whatsconnect.infra.db.models import Contact, Message
from whatsconnect.infra.db.repositories import ContactRepository, MessageRepository
from whatsconnect.infra.realtime.channels import CONVERSATIONS_CHANNEL, contact_channel
from whatsconnect.infra.realtime.events import RealtimeEvent
from whatsconnect.infra.realtime.publisher import (
    NoopRealtimePublisher,
    RealtimePublisher,
    safe_publish,
)
from whatsconnect.services.errors import ContactNotFoundError
from whatsconnect.services.payloads import contact_payload

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ConversationSummary:
    contact: Contact
    last_message: Message
    message_count: int
    unread_count: int
    sla: SlaWindow | None
    latest_sentiment: SentimentLabel


@dataclass(frozen=True, slots=True)
class MessageStats:
    total: int
    inbound: int
    outbound: int
    today: int


class ConversationService:
    """Read side of the inbox: summaries, history and unread bookkeeping."""

    def __init__(
        self,
        session: AsyncSession,
        contacts: ContactRepository | None = None,
        messages: MessageRepository | None = None,
        realtime: RealtimePublisher | None = None,
        clock: Callable[[], datetime] | None = None,
        sla_threshold_minutes: int = DEFAULT_THRESHOLD_MINUTES,
        urgent_window_minutes: int = DEFAULT_URGENT_WINDOW_MINUTES,
    ) -> None:
        self.session = session
        self.contacts = contacts or ContactRepository(session)
        self.messages = messages or MessageRepository(session)
        self.realtime = realtime or NoopRealtimePublisher()
        self._clock = clock or (lambda: datetime.now(UTC))
        self.sla_threshold_minutes = sla_threshold_minutes
        self.urgent_window_minutes = urgent_window_minutes

    async def list_conversations(self) -> list[ConversationSummary]:
        now = self._clock()
        stats = await self.messages.stats_by_contact()
        contacts = await self.contacts.get_many(
            row.contact_id for row in stats if row.contact_id is not None
        )

        summaries: list[ConversationSummary] = []
        for row in stats:
            contact = contacts.get(row.contact_id) if row.contact_id is not None else None
            if contact is None:
                logger.warning(
                    "Skipping %d message(s) without a known contact (contact_id=%s)",
                    row.message_count,
                    row.contact_id,
                )
                continue

            last_message = await self.messages.get_latest(contact.id)
            if last_message is None:
                continue
            latest_inbound = await self.messages.get_latest(
                contact.id, direction=MessageDirection.INBOUND
            )
            summaries.append(
                ConversationSummary(
                    contact=contact,
                    last_message=last_message,
                    message_count=row.message_count,
                    unread_count=contact.unread_count,
                    sla=compute_sla_window(
                        contact.last_contacted_at,
                        now,
                        threshold_minutes=self.sla_threshold_minutes,
                        urgent_window_minutes=self.urgent_window_minutes,
                    ),
                    latest_sentiment=(
                        latest_inbound.sentiment_label
                        if latest_inbound is not None
                        else SentimentLabel.NEUTRAL
                    ),
                )
            )

        summaries.sort(key=lambda summary: summary.last_message.timestamp, reverse=True)
        return summaries

    async def mark_read(self, contact_id: UUID) -> Contact:
        contact = await self.contacts.reset_unread(contact_id)
        if contact is None:
            await self.session.rollback()
            raise ContactNotFoundError(contact_id)
        await self.session.commit()

        await safe_publish(
            self.realtime,
            [CONVERSATIONS_CHANNEL, contact_channel(contact.id)],
            RealtimeEvent.CONTACT_UPDATED,
            {"contact": contact_payload(contact)},
        )
        return contact

    async def list_messages_for_contact(self, contact_id: UUID) -> list[Message]:
        return await self.messages.list_by_contact(contact_id)

    async def list_messages_for_phone(self, phone: str) -> list[Message]:
        return await self.messages.list_by_phone(digits_only(phone))

    async def message_stats(self, now: datetime | None = None) -> MessageStats:
        current = now or self._clock()
        start_of_day = current.astimezone(UTC).replace(hour=0, minute=0, second=0, microsecond=0)
        return MessageStats(
            total=await self.messages.count(),
            inbound=await self.messages.count(direction=MessageDirection.INBOUND),
            outbound=await self.messages.count(direction=MessageDirection.OUTBOUND),
            today=await self.messages.count(since=start_of_day),
        )
