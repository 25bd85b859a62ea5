from fastapi import APIRouter

from whatsconnect.api.v1.routes import conversations, health, messages, realtime, whatsapp

api_router = APIRouter()
api_router.include_router(health.router, prefix="/v1", tags=["health"])
api_router.include_router(whatsapp.router, prefix="/v1/whatsapp", tags=["whatsapp"])
api_router.include_router(conversations.router, prefix="/v1/conversations", tags=["conversations"])
api_router.include_router(messages.router, prefix="/v1/messages", tags=["messages"])
api_router.include_router(realtime.router, prefix="/v1/realtime", tags=["realtime"])
