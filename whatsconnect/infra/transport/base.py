from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Protocol

from whatsconnect.infra.transport.events import TransportEvent

TransportEmitter = Callable[[TransportEvent], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class SentMessage:
    id: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(frozen=True, slots=True)
class ContactInfo:
    push_name: str | None = None
    name: str | None = None

    @property
    def display_name(self) -> str | None:
        return self.push_name or self.name


class MessagingTransport(Protocol):
    """Capability the session manager drives.

    Implementations report lifecycle changes and inbound messages through the
    emitter handed to their factory; they never touch CRM state directly.
    """

    async def initialize(self) -> None: ...

    async def send(self, chat_id: str, body: str) -> SentMessage: ...

    async def logout(self) -> None: ...

    async def destroy(self) -> None: ...

    async def get_contact_info(self, chat_id: str) -> ContactInfo | None: ...


TransportFactory = Callable[[TransportEmitter], MessagingTransport]


class PairingRenderer(Protocol):
    def render(self, code: str) -> str: ...
