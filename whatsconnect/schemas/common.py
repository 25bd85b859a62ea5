from pydantic import BaseModel


class CommandResponse(BaseModel):
    success: bool = True
    message: str
