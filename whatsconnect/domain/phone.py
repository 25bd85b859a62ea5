import re

from whatsconnect.domain.enums import ValidationFailure

CHAT_ID_SUFFIX = "@c.us"
MIN_PHONE_DIGITS = 10
MAX_PHONE_DIGITS = 15

_NON_DIGITS = re.compile(r"\D")


def digits_only(raw: str | None) -> str:
    return _NON_DIGITS.sub("", raw or "")


def phone_from_sender_id(sender_id: str) -> str:
    """``15551234567@c.us`` -> ``15551234567``."""
    local_part, _, _ = sender_id.partition("@")
    return digits_only(local_part)


def to_chat_id(phone: str) -> str:
    if "@" in phone:
        return phone
    return f"{phone}{CHAT_ID_SUFFIX}"


def check_phone_length(phone: str) -> ValidationFailure | None:
    if not phone:
        return ValidationFailure.EMPTY_PHONE
    if len(phone) < MIN_PHONE_DIGITS:
        return ValidationFailure.TOO_SHORT
    if len(phone) > MAX_PHONE_DIGITS:
        return ValidationFailure.TOO_LONG
    return None


def placeholder_contact_name(phone: str) -> str:
    return f"Customer {phone[-4:]}"
