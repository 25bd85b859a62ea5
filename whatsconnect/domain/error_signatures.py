"""Provider error signatures.

Transports report failures as free-form exception text. These tables map
case-insensitive substrings of that text onto the categories the session
manager and the send pipeline act on. Rows are checked in order and the
first match wins.
"""

from whatsconnect.domain.enums import SendFailure, TransportErrorKind

TRANSPORT_ERROR_SIGNATURES: tuple[tuple[TransportErrorKind, tuple[str, ...]], ...] = (
    (TransportErrorKind.RESOURCE_BUSY, ("ebusy", "resource busy", "locked")),
    (
        TransportErrorKind.PROTOCOL,
        (
            "protocol error",
            "execution context was destroyed",
            "target closed",
            "session closed",
        ),
    ),
    (TransportErrorKind.AUTH, ("auth", "unauthorized", "logged out")),
)

SEND_ERROR_SIGNATURES: tuple[tuple[SendFailure, tuple[str, ...]], ...] = (
    (
        SendFailure.NOT_REGISTERED,
        ("t: t", "not registered", "invalid number", "invalid wid"),
    ),
    (
        SendFailure.SESSION_LOST,
        ("protocol error", "execution context", "target closed", "session closed"),
    ),
    (SendFailure.TIMEOUT, ("timeout", "timed out")),
    (SendFailure.RATE_LIMITED, ("rate limit", "too many", "429")),
)


def error_text(error: BaseException | str) -> str:
    if isinstance(error, str):
        return error.lower()
    text = str(error) or type(error).__name__
    return text.lower()


def classify_transport_error(error: BaseException | str) -> TransportErrorKind:
    text = error_text(error)
    for kind, signatures in TRANSPORT_ERROR_SIGNATURES:
        if any(signature in text for signature in signatures):
            return kind
    return TransportErrorKind.OTHER


def classify_send_error(error: BaseException | str) -> SendFailure:
    text = error_text(error)
    for category, signatures in SEND_ERROR_SIGNATURES:
        if any(signature in text for signature in signatures):
            return category
    return SendFailure.UNKNOWN
