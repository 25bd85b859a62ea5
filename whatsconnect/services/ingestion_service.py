import asyncio
import logging
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from whatsconnect.core.logging import set_event_id
from whatsconnect.domain.enums import DeliveryStatus, MessageDirection, QueryStatus
from whatsconnect.domain.phone import phone_from_sender_id
from whatsconnect.domain.sentiment import classify
from whatsconnect.infra.db.models import Contact, Message
from whatsconnect.infra.db.repositories import ContactRepository, MessageRepository
from whatsconnect.infra.realtime.channels import CONVERSATIONS_CHANNEL, contact_channel
from whatsconnect.infra.realtime.events import RealtimeEvent
from whatsconnect.infra.realtime.publisher import (
    NoopRealtimePublisher,
    RealtimePublisher,
    safe_publish,
)
from whatsconnect.infra.transport.bus import TransportEventBus
from whatsconnect.infra.transport.events import InboundMessage
from whatsconnect.services.errors import PersistenceError
from whatsconnect.services.payloads import contact_payload, message_payload

logger = logging.getLogger(__name__)

DEFAULT_CONTACT_NAME = "Customer"


class ContactNameLookup(Protocol):
    async def lookup_display_name(self, sender_id: str) -> str | None: ...


@dataclass(slots=True)
class IngestionResult:
    contact: Contact
    message: Message
    contact_created: bool


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class InboundMessageService:
    """Reconciles the sender's contact and stores one inbound message."""

    def __init__(
        self,
        session: AsyncSession,
        contact_names: ContactNameLookup | None = None,
        contacts: ContactRepository | None = None,
        messages: MessageRepository | None = None,
        realtime: RealtimePublisher | None = None,
    ) -> None:
        self.session = session
        self.contact_names = contact_names
        self.contacts = contacts or ContactRepository(session)
        self.messages = messages or MessageRepository(session)
        self.realtime = realtime or NoopRealtimePublisher()

    async def ingest(self, event: InboundMessage) -> IngestionResult:
        phone = phone_from_sender_id(event.sender_id)
        if not phone:
            raise ValueError(f"Cannot derive a phone number from sender '{event.sender_id}'")

        timestamp = _as_utc(event.timestamp)
        body = event.body or ""
        try:
            contact, created = await self._reconcile_contact(event.sender_id, phone, timestamp)
            sentiment = classify(body)
            message = await self.messages.create(
                phone=phone,
                direction=MessageDirection.INBOUND,
                body=body,
                timestamp=timestamp,
                delivery_status=DeliveryStatus.DELIVERED,
                sentiment_label=sentiment.label,
                sentiment_score=sentiment.score,
                contact_id=contact.id,
                provider_message_id=event.message_id,
            )
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise PersistenceError("store inbound message", str(exc)) from exc

        logger.info(
            "Incoming message from %s (%s) [%s]: %s",
            contact.display_name,
            phone,
            sentiment.label.value,
            body[:50],
        )
        await self._emit(contact, message)
        return IngestionResult(contact=contact, message=message, contact_created=created)

    async def _reconcile_contact(
        self, sender_id: str, phone: str, timestamp: datetime
    ) -> tuple[Contact, bool]:
        contact = await self.contacts.get_by_phone(phone)
        if contact is None:
            contact, created = await self.contacts.create_if_absent(
                phone=phone,
                display_name=await self._resolve_display_name(sender_id),
                query_status=QueryStatus.NEW,
                unread_count=1,
                last_contacted_at=timestamp,
            )
            if created:
                logger.info("Auto-created contact %s (%s)", contact.display_name, phone)
                return contact, True

        updated = await self.contacts.record_inbound(contact.id, timestamp)
        if updated is None:
            raise PersistenceError("update contact", f"contact '{contact.id}' disappeared")
        return updated, False

    async def _resolve_display_name(self, sender_id: str) -> str:
        if self.contact_names is None:
            return DEFAULT_CONTACT_NAME
        name = await self.contact_names.lookup_display_name(sender_id)
        return name.strip() if name and name.strip() else DEFAULT_CONTACT_NAME

    async def _emit(self, contact: Contact, message: Message) -> None:
        channels = [CONVERSATIONS_CHANNEL, contact_channel(contact.id)]
        await safe_publish(
            self.realtime,
            channels,
            RealtimeEvent.MESSAGE_CREATED,
            {"message": message_payload(message)},
        )
        await safe_publish(
            self.realtime,
            channels,
            RealtimeEvent.CONTACT_UPDATED,
            {"contact": contact_payload(contact)},
        )


SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]
ServiceFactory = Callable[[AsyncSession], InboundMessageService]


class MessageIngestionPipeline:
    """Single-consumer worker between the transport bus and the database.

    The bus handler only enqueues, so the transport's dispatch loop never
    waits on persistence. One worker drains the queue, which keeps arrival
    order per contact. Failures are logged and the event is dropped.
    """

    def __init__(
        self,
        bus: TransportEventBus,
        session_factory: SessionFactory,
        contact_names: ContactNameLookup | None = None,
        realtime: RealtimePublisher | None = None,
        queue_size: int = 1000,
        service_factory: ServiceFactory | None = None,
    ) -> None:
        self._bus = bus
        self._session_factory = session_factory
        self._contact_names = contact_names
        self._realtime = realtime
        self._service_factory = service_factory or self._build_service
        self._queue: asyncio.Queue[InboundMessage] = asyncio.Queue(maxsize=queue_size)
        self._worker: asyncio.Task[None] | None = None
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    @property
    def backlog(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        if self.running:
            return
        self._unsubscribe = self._bus.subscribe(InboundMessage, self.enqueue)
        self._worker = asyncio.get_running_loop().create_task(
            self._run(), name="inbound-message-ingestion"
        )

    async def stop(self, drain_timeout: float = 5.0) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._worker is None:
            return

        try:
            await asyncio.wait_for(self._queue.join(), timeout=drain_timeout)
        except TimeoutError:
            logger.warning("Dropping %d queued inbound message(s) on shutdown", self.backlog)
        self._worker.cancel()
        await asyncio.gather(self._worker, return_exceptions=True)
        self._worker = None

    async def enqueue(self, event: InboundMessage) -> None:
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.error(
                "Inbound queue full, dropping message %s from %s",
                event.message_id,
                event.sender_id,
            )

    async def drain(self) -> None:
        await self._queue.join()

    async def process(self, event: InboundMessage) -> IngestionResult | None:
        set_event_id(event.message_id)
        try:
            async with self._session_factory() as session:
                return await self._service_factory(session).ingest(event)
        except Exception:
            logger.exception("Error saving incoming message from %s, event dropped", event.sender_id)
            return None
        finally:
            set_event_id(None)

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self.process(event)
            finally:
                self._queue.task_done()

    def _build_service(self, session: AsyncSession) -> InboundMessageService:
        return InboundMessageService(
            session=session,
            contact_names=self._contact_names,
            realtime=self._realtime,
        )
