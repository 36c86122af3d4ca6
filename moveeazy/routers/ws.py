import logging

import jwt
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ..auth import KIND_ADMIN, KIND_DRIVER, KIND_USER, decode_access_token
from ..ws_manager import event_hub


router = APIRouter()
logger = logging.getLogger("moveeazy.events")

_JOIN_KINDS = {"driver_join": KIND_DRIVER, "user_join": KIND_USER}


def _room_id(value) -> str | None:
    if isinstance(value, dict):
        value = value.get("id")
    if value is None or isinstance(value, bool):
        return None
    text = str(value).strip()
    return text or None


def may_join(claims: dict | None, kind: str, ident: str) -> bool:
    """Anonymous sockets may join any room; a token pins joins to its own principal."""
    if claims is None:
        return True
    if claims.get("type") == KIND_ADMIN:
        return True
    return claims.get("type") == kind and str(claims.get("sub")) == ident


async def _handle(websocket: WebSocket, message, claims: dict | None = None) -> None:
    if not isinstance(message, dict):
        return
    event = message.get("event")
    data = message.get("data")
    if event in _JOIN_KINDS:
        ident = _room_id(data)
        if ident is None:
            return
        kind = _JOIN_KINDS[event]
        room = f"{kind}_{ident}"
        if not may_join(claims, kind, ident):
            logger.info("refused %s to token sub=%s type=%s", room, claims.get("sub"), claims.get("type"))
            await websocket.send_json({"event": "error", "data": {"code": "forbidden", "room": room}})
            return
        await event_hub.join(room, websocket)
        await websocket.send_json({"event": "joined", "data": {"room": room}})
    elif event == "update_location" and isinstance(data, dict):
        driver_id = _room_id(data.get("driverId"))
        if driver_id is None:
            return
        await event_hub.emit(
            f"driver_location_{driver_id}",
            {"latitude": data.get("latitude"), "longitude": data.get("longitude")},
        )
    else:
        logger.debug("ignoring socket event %r", event)


async def _serve(websocket: WebSocket):
    # Optional auth via token query (?token=JWT)
    claims = None
    token = websocket.query_params.get("token")
    if token:
        try:
            claims = decode_access_token(token)
        except jwt.InvalidTokenError:
            await websocket.close(code=4401)
            return
    await event_hub.connect(websocket)
    try:
        while True:
            try:
                message = await websocket.receive_json()
            except (KeyError, ValueError):
                # Binary frame or not JSON; keep the connection
                continue
            await _handle(websocket, message, claims)
    except WebSocketDisconnect:
        pass
    finally:
        await event_hub.disconnect(websocket)


@router.websocket("/ws")
async def ws_events(websocket: WebSocket):
    await _serve(websocket)


@router.websocket("/socket")
async def ws_events_alias(websocket: WebSocket):
    await _serve(websocket)
