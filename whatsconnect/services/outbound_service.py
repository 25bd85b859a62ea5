import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Protocol
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from whatsconnect.core.logging import set_event_id
from whatsconnect.domain.enums import (
    DeliveryStatus,
    MessageDirection,
    QueryStatus,
    SendFailure,
    ValidationFailure,
)
from whatsconnect.domain.error_signatures import classify_send_error
from whatsconnect.domain.phone import check_phone_length, digits_only, placeholder_contact_name
from whatsconnect.infra.db.models import Contact, Message
from whatsconnect.infra.db.repositories import ContactRepository, MessageRepository
from whatsconnect.infra.realtime.channels import CONVERSATIONS_CHANNEL, contact_channel
from whatsconnect.infra.realtime.events import RealtimeEvent
from whatsconnect.infra.realtime.publisher import (
    NoopRealtimePublisher,
    RealtimePublisher,
    safe_publish,
)
from whatsconnect.infra.transport.base import SentMessage
from whatsconnect.services.connection_manager import SessionStatus
from whatsconnect.services.errors import NotReadyError, SendError, SendValidationError
from whatsconnect.services.payloads import contact_payload, message_payload

logger = logging.getLogger(__name__)

SEND_SUCCESS_MESSAGE = "Message sent successfully"


class MessageDispatcher(Protocol):
    def get_status(self) -> SessionStatus: ...

    async def send(self, phone: str, body: str) -> SentMessage: ...


@dataclass(slots=True)
class OutboundSendResult:
    message_id: str
    contact: Contact | None
    message: Message | None

    @property
    def persisted(self) -> bool:
        return self.message is not None


def validate_outbound(phone: str | None, body: str | None) -> tuple[str, str]:
    """Return the digits-only phone and trimmed body, or raise SendValidationError."""
    cleaned_phone = digits_only(phone)
    failure = check_phone_length(cleaned_phone)
    if failure is not None:
        raise SendValidationError(failure, cleaned_phone)

    text = (body or "").strip()
    if not text:
        raise SendValidationError(ValidationFailure.EMPTY_MESSAGE, cleaned_phone)
    return cleaned_phone, text


class OutboundMessageService:
    def __init__(
        self,
        session: AsyncSession,
        dispatcher: MessageDispatcher,
        contacts: ContactRepository | None = None,
        messages: MessageRepository | None = None,
        realtime: RealtimePublisher | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.session = session
        self.dispatcher = dispatcher
        self.contacts = contacts or ContactRepository(session)
        self.messages = messages or MessageRepository(session)
        self.realtime = realtime or NoopRealtimePublisher()
        self._clock = clock or (lambda: datetime.now(UTC))

    async def send(
        self,
        phone: str | None,
        body: str | None,
        contact_id: UUID | None = None,
    ) -> OutboundSendResult:
        if not self.dispatcher.get_status().connected:
            raise NotReadyError()

        cleaned_phone, text = validate_outbound(phone, body)
        logger.debug("Processing phone number: original=%r cleaned=%s", phone, cleaned_phone)

        sent = await self._dispatch(cleaned_phone, text)
        set_event_id(sent.id)
        try:
            logger.info("Message sent successfully to %s", cleaned_phone)
            contact, message = await self._record(sent, cleaned_phone, text, contact_id)
        finally:
            set_event_id(None)
        return OutboundSendResult(message_id=sent.id, contact=contact, message=message)

    async def _dispatch(self, phone: str, text: str) -> SentMessage:
        try:
            return await self.dispatcher.send(phone, text)
        except (SendError, NotReadyError):
            raise
        except Exception as exc:
            category = classify_send_error(exc)
            logger.error("Send to %s failed [%s]: %s", phone, category.value, exc)
            if category == SendFailure.UNKNOWN and not self.dispatcher.get_status().connected:
                raise NotReadyError(
                    "WhatsApp is not connected. "
                    "Please go to Settings and connect your WhatsApp account first."
                ) from exc
            raise SendError(category, phone, str(exc) or type(exc).__name__) from exc

    async def _record(
        self,
        sent: SentMessage,
        phone: str,
        text: str,
        contact_id: UUID | None,
    ) -> tuple[Contact | None, Message | None]:
        now = self._clock()
        try:
            contact = await self._resolve_contact(phone, contact_id)
            message = await self.messages.create(
                phone=phone,
                direction=MessageDirection.OUTBOUND,
                body=text,
                timestamp=now,
                delivery_status=DeliveryStatus.SENT,
                contact_id=contact.id,
                provider_message_id=sent.id,
            )
            contact = await self.contacts.record_agent_reply(contact.id, now) or contact
            await self.session.commit()
        except Exception:
            # Delivery already happened; the stored copy is a side record.
            logger.exception("Message %s was sent but could not be recorded", sent.id)
            await self._rollback()
            return None, None

        await self._emit(contact, message)
        return contact, message

    async def _resolve_contact(self, phone: str, contact_id: UUID | None) -> Contact:
        if contact_id is not None:
            contact = await self.contacts.get_by_id(contact_id)
            if contact is not None and contact.phone == phone:
                return contact
            if contact is not None:
                logger.warning(
                    "Contact %s has phone %s, not %s; resolving by phone instead",
                    contact_id,
                    contact.phone,
                    phone,
                )

        contact = await self.contacts.get_by_phone(phone)
        if contact is not None:
            return contact

        contact, created = await self.contacts.create_if_absent(
            phone=phone,
            display_name=placeholder_contact_name(phone),
            query_status=QueryStatus.NEW,
            unread_count=0,
        )
        if created:
            logger.info("Auto-created contact %s (%s)", contact.display_name, phone)
        return contact

    async def _rollback(self) -> None:
        try:
            await self.session.rollback()
        except Exception:
            logger.warning("Rollback after failed outbound record also failed", exc_info=True)

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
