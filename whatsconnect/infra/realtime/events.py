from enum import Enum


class RealtimeEvent(str, Enum):
    SESSION_STATE_CHANGED = "session.state_changed"
    MESSAGE_CREATED = "message.created"
    CONTACT_UPDATED = "contact.updated"
