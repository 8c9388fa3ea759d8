"""Chat router providing the WebSocket endpoint and read-only listings.

This module provides:
    - WebSocket /ws/chat: Real-time chat
    - GET /rooms: Room summaries in seed order
    - GET /users: Joined users in join order

Protocol:
    Every frame is ``{"event": <name>, "data": <payload>}``.

    1. Client connects -> Server sends {event: "connected", data: {id}}
    2. Client sends user:join {username, avatar?}
       -> self: user:joined {user, rooms}
       -> all: users:update [...]
       -> general: message:receive {type: "system", ...}
    3. Client sends room:join {roomId}
       -> old room / new room: system messages
       -> self: room:joined {roomId, roomName}
       -> all: rooms:update [...]
    4. Client sends message:send {content, room?}
       -> room: message:receive {type: "user", ...}
       -> self: message:sent {messageId, success}
    5. Client sends private:send {recipientId, content}
       -> sender + recipient: private:receive {type: "private", ...}
    6. typing:start / typing:stop, message:react, message:read, private:read
    7. On disconnect -> old room: system message; all: users:update, rooms:update
"""
import json
import logging
from typing import Any, Dict, List

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from .manager import manager

logger = logging.getLogger(__name__)

router = APIRouter(tags=["chat"])


@router.get("/rooms")
async def list_rooms() -> List[Dict[str, Any]]:
    """Room summaries: id, name and current member count."""
    return manager.controller.state.presence.rooms_snapshot()


@router.get("/users")
async def list_users() -> List[Dict[str, Any]]:
    """Every joined user with their current room."""
    return manager.controller.state.presence.users_snapshot()


@router.websocket("/ws/chat")
async def websocket_chat_endpoint(websocket: WebSocket) -> None:
    """WebSocket endpoint handling one client's whole session.

    Bad frames are logged and skipped; only a transport disconnect ends
    the loop.
    """
    token = await manager.connect(websocket)
    logger.info(f"[WS] Connection accepted. token={token}, live={len(manager.sockets)}")

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            raw = message.get("text")
            if raw is None:
                logger.warning("[WS] Binary frame from %s ignored", token)
                manager.controller.metrics.increment_errors()
                continue
            try:
                frame = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning("[WS] Non-JSON frame from %s ignored", token)
                manager.controller.metrics.increment_errors()
                continue
            await manager.receive(token, frame)
    except WebSocketDisconnect:
        logger.info(f"[WS] Connection {token} closed")
    finally:
        await manager.disconnect(token)
