from pydantic import BaseModel

from whatsconnect.domain.enums import SessionState


class SessionStatusResponse(BaseModel):
    connected: bool
    has_pairing_code: bool
    state: SessionState
    retry_count: int
    last_error: str | None = None


class PairingResponse(BaseModel):
    pairing_image: str | None = None
    pairing_code: str | None = None
    status: str | None = None
