from uuid import UUID

from whatsconnect.domain.enums import SendFailure, ValidationFailure
from whatsconnect.domain.phone import MAX_PHONE_DIGITS


class SessionError(RuntimeError):
    """Base class for messaging session failures."""


class NotReadyError(SessionError):
    def __init__(self, detail: str | None = None) -> None:
        super().__init__(
            detail
            or "WhatsApp not connected. Please check your connection in Settings."
        )


class AuthFailedError(SessionError):
    def __init__(self, detail: str) -> None:
        super().__init__(f"WhatsApp authentication failed: {detail}")
        self.detail = detail


class TransportFatalError(SessionError):
    def __init__(self, attempts: int, detail: str | None) -> None:
        super().__init__(
            f"WhatsApp initialization failed after {attempts} retries"
            + (f": {detail}" if detail else "")
        )
        self.attempts = attempts
        self.detail = detail


class SendValidationError(ValueError):
    def __init__(self, reason: ValidationFailure, phone: str = "") -> None:
        super().__init__(_validation_message(reason, phone))
        self.reason = reason
        self.phone = phone


class SendError(RuntimeError):
    def __init__(self, category: SendFailure, phone: str, detail: str = "") -> None:
        super().__init__(_send_failure_message(category, phone, detail))
        self.category = category
        self.phone = phone
        self.detail = detail


class PersistenceError(RuntimeError):
    def __init__(self, operation: str, detail: str) -> None:
        super().__init__(f"Failed to {operation}: {detail}")
        self.operation = operation
        self.detail = detail


class ContactNotFoundError(LookupError):
    def __init__(self, contact_id: UUID) -> None:
        super().__init__(f"Contact '{contact_id}' not found")
        self.contact_id = contact_id


def _validation_message(reason: ValidationFailure, phone: str) -> str:
    if reason == ValidationFailure.EMPTY_PHONE:
        return "Phone number is required and cannot be empty."
    if reason == ValidationFailure.TOO_SHORT:
        return (
            f"Phone number is too short ({len(phone)} digits). "
            "Please include country code.\n"
            "Example: 1234567890 (US) or 911234567890 (India)"
        )
    if reason == ValidationFailure.TOO_LONG:
        return (
            f"Phone number is too long ({len(phone)} digits). "
            f"Maximum is {MAX_PHONE_DIGITS} digits with country code."
        )
    return "Message cannot be empty"


def _send_failure_message(category: SendFailure, phone: str, detail: str) -> str:
    if category == SendFailure.NOT_REGISTERED:
        return (
            f"Phone number {phone} is not registered on WhatsApp or is invalid. "
            "Please verify:\n"
            "- The number includes country code (e.g., 1234567890 for US)\n"
            "- The number is correct\n"
            "- The contact has WhatsApp installed"
        )
    if category == SendFailure.SESSION_LOST:
        return (
            "WhatsApp connection lost. "
            "Please go to Settings and reconnect your WhatsApp account."
        )
    if category == SendFailure.TIMEOUT:
        return (
            "Request timed out. "
            "Please check your internet connection and try again."
        )
    if category == SendFailure.RATE_LIMITED:
        return (
            "Too many messages sent. "
            "Please wait a few minutes before sending more messages."
        )
    return (
        f"Failed to send message: {detail or 'Unknown error'}. Please verify:\n"
        "- Phone number format is correct (include country code)\n"
        "- WhatsApp is connected\n"
        "- The number is registered on WhatsApp"
    )
