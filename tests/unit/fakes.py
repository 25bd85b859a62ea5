from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import UUID, uuid4

from whatsconnect.domain.enums import (
    DeliveryStatus,
    MessageDirection,
    QueryStatus,
    SentimentLabel,
)
from whatsconnect.domain.state_machine import ContactLifecycle
from whatsconnect.infra.db.repositories import ContactMessageStats


class DummySession:
    def __init__(self) -> None:
        self.commits = 0
        self.rollbacks = 0

    async def commit(self) -> None:
        self.commits += 1

    async def rollback(self) -> None:
        self.rollbacks += 1


@dataclass(slots=True)
class FakeContact:
    id: UUID
    phone: str
    display_name: str
    unread_count: int = 0
    query_status: QueryStatus = QueryStatus.NEW
    last_contacted_at: datetime | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(slots=True)
class FakeMessage:
    id: UUID
    contact_id: UUID | None
    phone: str
    direction: MessageDirection
    body: str
    timestamp: datetime
    delivery_status: DeliveryStatus
    sentiment_label: SentimentLabel = SentimentLabel.NEUTRAL
    sentiment_score: float = 0.5
    provider_message_id: str | None = None


class FakeContactRepository:
    def __init__(self) -> None:
        self.contacts: dict[UUID, FakeContact] = {}

    def add(self, phone: str, display_name: str = "Ana", **values) -> FakeContact:
        contact = FakeContact(id=uuid4(), phone=phone, display_name=display_name, **values)
        self.contacts[contact.id] = contact
        return contact

    async def get_by_id(self, contact_id: UUID) -> FakeContact | None:
        return self.contacts.get(contact_id)

    async def get_by_phone(self, phone: str) -> FakeContact | None:
        for contact in self.contacts.values():
            if contact.phone == phone:
                return contact
        return None

    async def get_many(self, contact_ids) -> dict[UUID, FakeContact]:
        return {
            contact_id: self.contacts[contact_id]
            for contact_id in contact_ids
            if contact_id in self.contacts
        }

    async def create_if_absent(
        self,
        phone: str,
        display_name: str,
        query_status: QueryStatus = QueryStatus.NEW,
        unread_count: int = 0,
        last_contacted_at: datetime | None = None,
    ) -> tuple[FakeContact, bool]:
        existing = await self.get_by_phone(phone)
        if existing is not None:
            return existing, False
        contact = self.add(
            phone,
            display_name,
            query_status=query_status,
            unread_count=unread_count,
            last_contacted_at=last_contacted_at,
        )
        return contact, True

    async def record_inbound(self, contact_id: UUID, contacted_at: datetime) -> FakeContact | None:
        contact = self.contacts.get(contact_id)
        if contact is None:
            return None
        contact.unread_count += 1
        contact.query_status = ContactLifecycle.on_inbound(contact.query_status)
        contact.last_contacted_at = contacted_at
        return contact

    async def record_agent_reply(
        self, contact_id: UUID, contacted_at: datetime
    ) -> FakeContact | None:
        contact = self.contacts.get(contact_id)
        if contact is None:
            return None
        contact.query_status = ContactLifecycle.on_agent_reply(contact.query_status)
        contact.last_contacted_at = contacted_at
        return contact

    async def reset_unread(self, contact_id: UUID) -> FakeContact | None:
        contact = self.contacts.get(contact_id)
        if contact is None:
            return None
        contact.unread_count = 0
        return contact


class FakeMessageRepository:
    def __init__(self) -> None:
        self.messages: list[FakeMessage] = []
        self.fail_on_create: Exception | None = None

    async def create(
        self,
        phone: str,
        direction: MessageDirection,
        body: str,
        timestamp: datetime,
        delivery_status: DeliveryStatus,
        sentiment_label: SentimentLabel = SentimentLabel.NEUTRAL,
        sentiment_score: float = 0.5,
        contact_id: UUID | None = None,
        provider_message_id: str | None = None,
    ) -> FakeMessage:
        if self.fail_on_create is not None:
            raise self.fail_on_create
        message = FakeMessage(
            id=uuid4(),
            contact_id=contact_id,
            phone=phone,
            direction=direction,
            body=body,
            timestamp=timestamp,
            delivery_status=delivery_status,
            sentiment_label=sentiment_label,
            sentiment_score=sentiment_score,
            provider_message_id=provider_message_id,
        )
        self.messages.append(message)
        return message

    async def list_by_contact(self, contact_id: UUID) -> list[FakeMessage]:
        return sorted(
            (message for message in self.messages if message.contact_id == contact_id),
            key=lambda message: message.timestamp,
        )

    async def list_by_phone(self, phone: str) -> list[FakeMessage]:
        return sorted(
            (message for message in self.messages if message.phone == phone),
            key=lambda message: message.timestamp,
        )

    async def stats_by_contact(self) -> list[ContactMessageStats]:
        grouped: dict[UUID | None, list[FakeMessage]] = {}
        for message in self.messages:
            grouped.setdefault(message.contact_id, []).append(message)
        stats = [
            ContactMessageStats(
                contact_id=contact_id,
                message_count=len(messages),
                last_message_at=max(message.timestamp for message in messages),
            )
            for contact_id, messages in grouped.items()
        ]
        return sorted(stats, key=lambda row: row.last_message_at, reverse=True)

    async def get_latest(
        self,
        contact_id: UUID,
        direction: MessageDirection | None = None,
    ) -> FakeMessage | None:
        candidates = [
            message
            for message in self.messages
            if message.contact_id == contact_id
            and (direction is None or message.direction == direction)
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda message: message.timestamp)

    async def count(
        self,
        direction: MessageDirection | None = None,
        since: datetime | None = None,
    ) -> int:
        return sum(
            1
            for message in self.messages
            if (direction is None or message.direction == direction)
            and (since is None or message.timestamp >= since)
        )


@dataclass(slots=True)
class RecordingPublisher:
    events: list[tuple[list[str], str, dict]] = field(default_factory=list)

    async def publish(self, channels, event, payload) -> None:
        self.events.append((list(channels), event.value, dict(payload)))

    @property
    def names(self) -> list[str]:
        return [name for _, name, _ in self.events]
