import json
from uuid import UUID

from fastapi import APIRouter, WebSocket
from starlette.websockets import WebSocketDisconnect

from whatsconnect.infra.realtime.channels import (
    CONVERSATIONS_CHANNEL,
    SESSION_CHANNEL,
    contact_channel,
)
from whatsconnect.infra.realtime.hub import build_envelope

router = APIRouter()

_CONTACT_PREFIX = "contact:"


def _resolve_channel(raw: str | None) -> str | None:
    if raw is None:
        return None
    candidate = raw.strip()
    if candidate in (SESSION_CHANNEL, CONVERSATIONS_CHANNEL):
        return candidate
    if candidate.startswith(_CONTACT_PREFIX):
        try:
            return contact_channel(UUID(candidate[len(_CONTACT_PREFIX) :]))
        except ValueError:
            return None
    return None


@router.websocket("/ws")
async def realtime_ws(websocket: WebSocket) -> None:
    hub = getattr(websocket.app.state, "realtime_hub", None)
    if hub is None:
        await websocket.close(code=1011, reason="Realtime hub not initialized")
        return

    requested = websocket.query_params.getlist("channel") or [
        SESSION_CHANNEL,
        CONVERSATIONS_CHANNEL,
    ]
    channels = [_resolve_channel(raw) for raw in requested]
    if any(channel is None for channel in channels):
        await websocket.close(
            code=1008,
            reason="Unsupported channel. Use session, conversations or contact:<id>",
        )
        return

    await websocket.accept()
    for channel in channels:
        await hub.subscribe(websocket, channel)
    await websocket.send_json(build_envelope("system.connected", None, {"channels": channels}))

    try:
        while True:
            raw_message = await websocket.receive_text()
            if raw_message.strip().lower() == "ping":
                await websocket.send_json(build_envelope("system.pong", None, {}))
                continue

            try:
                message = json.loads(raw_message)
            except json.JSONDecodeError:
                await websocket.send_json(
                    build_envelope("system.error", None, {"detail": "Expected JSON payload"})
                )
                continue

            action = message.get("action") if isinstance(message, dict) else None
            if action == "ping":
                await websocket.send_json(build_envelope("system.pong", None, {}))
                continue

            if action in ("subscribe", "unsubscribe"):
                channel = _resolve_channel(message.get("channel"))
                if channel is None:
                    await websocket.send_json(
                        build_envelope("system.error", None, {"detail": "Invalid channel"})
                    )
                    continue
                if action == "subscribe":
                    await hub.subscribe(websocket, channel)
                else:
                    await hub.unsubscribe(websocket, channel)
                await websocket.send_json(
                    build_envelope(f"system.{action}d", channel, {"channel": channel})
                )
                continue

            await websocket.send_json(
                build_envelope("system.error", None, {"detail": "Unsupported action"})
            )
    except WebSocketDisconnect:
        return
    finally:
        await hub.disconnect(websocket)
