from typing import Any

from whatsconnect.infra.db.models import Contact, Message


def _iso(value) -> str | None:
    return value.isoformat() if value is not None else None


def contact_payload(contact: Contact) -> dict[str, Any]:
    return {
        "id": str(contact.id),
        "phone": contact.phone,
        "display_name": contact.display_name,
        "unread_count": contact.unread_count,
        "query_status": contact.query_status.value,
        "last_contacted_at": _iso(contact.last_contacted_at),
    }


def message_payload(message: Message) -> dict[str, Any]:
    return {
        "id": str(message.id),
        "contact_id": str(message.contact_id) if message.contact_id is not None else None,
        "phone": message.phone,
        "direction": message.direction.value,
        "body": message.body,
        "timestamp": _iso(message.timestamp),
        "delivery_status": message.delivery_status.value,
        "sentiment_label": message.sentiment_label.value,
        "sentiment_score": message.sentiment_score,
        "provider_message_id": message.provider_message_id,
    }
