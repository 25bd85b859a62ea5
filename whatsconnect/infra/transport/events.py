from dataclasses import dataclass, field
from datetime import UTC, datetime


@dataclass(frozen=True, slots=True)
class QRIssued:
    code: str


@dataclass(frozen=True, slots=True)
class Authenticated:
    pass


@dataclass(frozen=True, slots=True)
class Ready:
    pass


@dataclass(frozen=True, slots=True)
class AuthFailed:
    reason: str


@dataclass(frozen=True, slots=True)
class Disconnected:
    reason: str


@dataclass(frozen=True, slots=True)
class TransportError:
    error: BaseException


@dataclass(frozen=True, slots=True)
class InboundMessage:
    sender_id: str
    body: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    message_id: str | None = None


TransportEvent = QRIssued | Authenticated | Ready | AuthFailed | Disconnected | TransportError | InboundMessage
