"""WebSocket transport for the chat core.

The manager assigns each accepted WebSocket an opaque connection token,
forwards inbound frames to the ``SessionLifecycleController`` and delivers
the outbound events it returns.

Performance Notes:
    - Each event is fanned out with asyncio.gather(); events from one
      transition are delivered in order.
    - A failed send is logged and skipped. The broken socket is cleaned up
      when its own receive loop sees the disconnect.
"""
import asyncio
import logging
import uuid
from typing import Any, Dict, Iterable, List, Optional

from fastapi import WebSocket

from roomchat.config import get_config
from roomchat.monitoring.service import monitoring

from .events import OutboundEvent, ServerEvent
from .lifecycle import ChatState, SessionLifecycleController

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Maps connection tokens to live WebSockets and delivers events.

    Note:
        This is a singleton-style global instance. All WebSocket handlers
        share the same manager and therefore the same chat state.
    """

    def __init__(self, controller: SessionLifecycleController) -> None:
        self.controller = controller
        # token -> live WebSocket
        self.sockets: Dict[str, WebSocket] = {}

    async def connect(self, websocket: WebSocket) -> str:
        """Accept a WebSocket, assign its token and greet it.

        Returns:
            The backend-generated connection token.
        """
        await websocket.accept()
        token = str(uuid.uuid4())
        self.sockets[token] = websocket
        await self.deliver(self.controller.connect(token))
        await self._safe_send(websocket, {
            "event": ServerEvent.CONNECTED.value,
            "data": {"id": token},
        })
        return token

    async def receive(self, token: str, frame: Any) -> None:
        """Apply one inbound frame ``{"event": ..., "data": ...}``."""
        if not isinstance(frame, dict) or "event" not in frame:
            logger.warning("Ignoring frame without event from %s", token)
            self.controller.metrics.increment_errors()
            return
        logger.debug("Received %s from %s", frame.get("event"), token)
        await self.deliver(self.controller.dispatch(token, frame["event"], frame.get("data")))

    async def disconnect(self, token: str) -> None:
        self.sockets.pop(token, None)
        await self.deliver(self.controller.disconnect(token))

    async def deliver(self, events: Iterable[OutboundEvent]) -> None:
        """Send each event to its resolved recipients, in order."""
        for event in events:
            targets = [
                self.sockets[token] for token in event.recipients if token in self.sockets
            ]
            if not targets:
                continue
            frame = event.to_wire()
            await asyncio.gather(
                *[self._safe_send(conn, frame) for conn in targets],
                return_exceptions=True,
            )

    async def _safe_send(self, connection: WebSocket, message: dict) -> bool:
        """Send a message to a WebSocket connection with error handling.

        Returns:
            True if successful, False if connection failed.
        """
        try:
            await connection.send_json(message)
            return True
        except Exception as e:
            logger.debug(f"Failed to send to connection: {e}")
            return False

    def get_socket(self, token: str) -> Optional[WebSocket]:
        return self.sockets.get(token)

    def tokens(self) -> List[str]:
        return list(self.sockets)


def build_manager() -> ConnectionManager:
    state = ChatState.from_settings(get_config().chat)
    return ConnectionManager(SessionLifecycleController(state, metrics=monitoring))


# Global singleton instance used by all WebSocket handlers
manager = build_manager()
