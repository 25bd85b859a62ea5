from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import Select, case, func, literal, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from whatsconnect.domain.enums import (
    DeliveryStatus,
    MessageDirection,
    QueryStatus,
    SentimentLabel,
)
from whatsconnect.domain.state_machine import ContactLifecycle
from whatsconnect.infra.db.models import Contact, Message


@dataclass(frozen=True, slots=True)
class ContactMessageStats:
    contact_id: UUID | None
    message_count: int
    last_message_at: datetime


class ContactRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_by_id(self, contact_id: UUID) -> Contact | None:
        return await self.session.get(Contact, contact_id)

    async def get_by_phone(self, phone: str) -> Contact | None:
        stmt: Select[tuple[Contact]] = select(Contact).where(Contact.phone == phone).limit(1)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_many(self, contact_ids: Iterable[UUID]) -> dict[UUID, Contact]:
        ids = list(contact_ids)
        if not ids:
            return {}
        stmt: Select[tuple[Contact]] = select(Contact).where(Contact.id.in_(ids))
        result = await self.session.execute(stmt)
        return {contact.id: contact for contact in result.scalars().all()}

    async def create_if_absent(
        self,
        phone: str,
        display_name: str,
        query_status: QueryStatus = QueryStatus.NEW,
        unread_count: int = 0,
        last_contacted_at: datetime | None = None,
    ) -> tuple[Contact, bool]:
        contact = Contact(
            phone=phone,
            display_name=display_name,
            query_status=query_status,
            unread_count=unread_count,
            last_contacted_at=last_contacted_at,
        )
        try:
            async with self.session.begin_nested():
                self.session.add(contact)
                await self.session.flush()
        except IntegrityError:
            # Lost a race on the unique phone constraint.
            existing = await self.get_by_phone(phone)
            if existing is None:
                raise
            return existing, False
        await self.session.refresh(contact)
        return contact, True

    async def record_inbound(self, contact_id: UUID, contacted_at: datetime) -> Contact | None:
        stmt = (
            update(Contact)
            .where(Contact.id == contact_id)
            .values(
                unread_count=Contact.unread_count + 1,
                query_status=case(
                    (
                        Contact.query_status.in_(ContactLifecycle.reopenable_statuses()),
                        literal(QueryStatus.NEW, Contact.query_status.type),
                    ),
                    else_=Contact.query_status,
                ),
                last_contacted_at=contacted_at,
            )
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)
        return await self._reload(contact_id)

    async def record_agent_reply(self, contact_id: UUID, contacted_at: datetime) -> Contact | None:
        stmt = (
            update(Contact)
            .where(Contact.id == contact_id)
            .values(
                query_status=case(
                    (
                        Contact.query_status == QueryStatus.NEW,
                        literal(QueryStatus.IN_PROGRESS, Contact.query_status.type),
                    ),
                    else_=Contact.query_status,
                ),
                last_contacted_at=contacted_at,
            )
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)
        return await self._reload(contact_id)

    async def reset_unread(self, contact_id: UUID) -> Contact | None:
        stmt = (
            update(Contact)
            .where(Contact.id == contact_id)
            .values(unread_count=0)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)
        return await self._reload(contact_id)

    async def _reload(self, contact_id: UUID) -> Contact | None:
        return await self.session.get(Contact, contact_id, populate_existing=True)


class MessageRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

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
    ) -> Message:
        message = Message(
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
        self.session.add(message)
        await self.session.flush()
        await self.session.refresh(message)
        return message

    async def list_by_contact(self, contact_id: UUID) -> list[Message]:
        stmt: Select[tuple[Message]] = (
            select(Message)
            .where(Message.contact_id == contact_id)
            .order_by(Message.timestamp.asc(), Message.id.asc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_by_phone(self, phone: str) -> list[Message]:
        stmt: Select[tuple[Message]] = (
            select(Message)
            .where(Message.phone == phone)
            .order_by(Message.timestamp.asc(), Message.id.asc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def stats_by_contact(self) -> list[ContactMessageStats]:
        stmt = (
            select(
                Message.contact_id,
                func.count(Message.id),
                func.max(Message.timestamp),
            )
            .group_by(Message.contact_id)
            .order_by(func.max(Message.timestamp).desc())
        )
        result = await self.session.execute(stmt)
        return [
            ContactMessageStats(
                contact_id=contact_id,
                message_count=int(message_count),
                last_message_at=last_message_at,
            )
            for contact_id, message_count, last_message_at in result.all()
        ]

    async def get_latest(
        self,
        contact_id: UUID,
        direction: MessageDirection | None = None,
    ) -> Message | None:
        stmt: Select[tuple[Message]] = select(Message).where(Message.contact_id == contact_id)
        if direction is not None:
            stmt = stmt.where(Message.direction == direction)
        stmt = stmt.order_by(Message.timestamp.desc(), Message.id.desc()).limit(1)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def count(
        self,
        direction: MessageDirection | None = None,
        since: datetime | None = None,
    ) -> int:
        stmt: Select[tuple[int]] = select(func.count(Message.id))
        if direction is not None:
            stmt = stmt.where(Message.direction == direction)
        if since is not None:
            stmt = stmt.where(Message.timestamp >= since)
        result = await self.session.execute(stmt)
        return int(result.scalar_one() or 0)
