"""In-process transport for local development and tests.

Pairs itself (or waits for ``complete_pairing``), echoes nothing back, and
keeps an outbox of everything sent. ``deliver_inbound`` simulates a customer
writing in.
"""

import logging
import secrets
from datetime import UTC, datetime
from uuid import uuid4

from whatsconnect.infra.transport.base import ContactInfo, SentMessage, TransportEmitter
from whatsconnect.infra.transport.events import (
    Authenticated,
    Disconnected,
    InboundMessage,
    QRIssued,
    Ready,
)

logger = logging.getLogger(__name__)


class LoopbackTransport:
    def __init__(
        self,
        emit: TransportEmitter,
        *,
        auto_pair: bool = True,
        contacts: dict[str, ContactInfo] | None = None,
    ) -> None:
        self._emit = emit
        self._auto_pair = auto_pair
        self._contacts = dict(contacts or {})
        self._ready = False
        self._destroyed = False
        self.outbox: list[tuple[str, str, SentMessage]] = []

    @property
    def is_ready(self) -> bool:
        return self._ready

    async def initialize(self) -> None:
        if self._destroyed:
            raise RuntimeError("Session closed: loopback transport was destroyed")
        await self._emit(QRIssued(code=f"loopback@{secrets.token_urlsafe(16)}"))
        if self._auto_pair:
            await self.complete_pairing()

    async def complete_pairing(self) -> None:
        await self._emit(Authenticated())
        self._ready = True
        await self._emit(Ready())

    async def send(self, chat_id: str, body: str) -> SentMessage:
        if not self._ready:
            raise RuntimeError("Session closed: loopback transport is not ready")
        sent = SentMessage(id=f"true_{chat_id}_{uuid4().hex}")
        self.outbox.append((chat_id, body, sent))
        logger.debug("Loopback delivered message %s to %s", sent.id, chat_id)
        return sent

    async def logout(self) -> None:
        self._ready = False

    async def destroy(self) -> None:
        self._ready = False
        self._destroyed = True

    async def get_contact_info(self, chat_id: str) -> ContactInfo | None:
        return self._contacts.get(chat_id)

    async def deliver_inbound(
        self,
        sender_id: str,
        body: str,
        timestamp: datetime | None = None,
    ) -> None:
        await self._emit(
            InboundMessage(
                sender_id=sender_id,
                body=body,
                timestamp=timestamp or datetime.now(UTC),
                message_id=f"false_{sender_id}_{uuid4().hex}",
            )
        )

    async def drop_connection(self, reason: str = "NAVIGATION") -> None:
        self._ready = False
        await self._emit(Disconnected(reason=reason))
