from uuid import UUID

SESSION_CHANNEL = "session"
CONVERSATIONS_CHANNEL = "conversations"


def contact_channel(contact_id: UUID) -> str:
    return f"contact:{contact_id}"
