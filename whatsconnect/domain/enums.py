from enum import Enum


class SessionState(str, Enum):
    IDLE = "idle"
    INITIALIZING = "initializing"
    AWAITING_SCAN = "awaiting_scan"
    READY = "ready"
    FAILED = "failed"
    DISCONNECTED = "disconnected"


class SessionAction(str, Enum):
    START = "start"
    QR_ISSUED = "qr_issued"
    AUTHENTICATED = "authenticated"
    READY = "ready"
    DISCONNECTED = "disconnected"
    RETRY = "retry"
    AUTH_FAILED = "auth_failed"
    FATAL_ERROR = "fatal_error"
    STOP = "stop"


class QueryStatus(str, Enum):
    NEW = "new"
    IN_PROGRESS = "in-progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class MessageDirection(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class DeliveryStatus(str, Enum):
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    FAILED = "failed"


class SentimentLabel(str, Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class TransportErrorKind(str, Enum):
    RESOURCE_BUSY = "resource_busy"
    PROTOCOL = "protocol"
    AUTH = "auth"
    OTHER = "other"


class SendFailure(str, Enum):
    NOT_REGISTERED = "not_registered"
    SESSION_LOST = "session_lost"
    TIMEOUT = "timeout"
    RATE_LIMITED = "rate_limited"
    UNKNOWN = "unknown"


class ValidationFailure(str, Enum):
    EMPTY_PHONE = "empty_phone"
    TOO_SHORT = "too_short"
    TOO_LONG = "too_long"
    EMPTY_MESSAGE = "empty_message"
