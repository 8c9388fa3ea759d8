"""Session Lifecycle Controller and the shared chat state.

Per connection the controller walks a small state machine::

    Connected --user:join--> Joined --room:join--> Joined --disconnect--> gone

Inbound events are applied through a dispatch table mapping each event name
to ``(payload model, handler)``. A handler takes ``(token, payload)``,
mutates the ``ChatState`` and returns the outbound events. Handlers do no
I/O, so they can be exercised without a transport.

Thread Safety:
    All transitions run under one lock, so no transition ever observes
    another half-applied. Delivery of the returned events happens outside
    the lock in ``manager.ConnectionManager``.
"""
import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Type

from pydantic import BaseModel, ValidationError

from .errors import ChatError
from .events import ClientEvent, OutboundEvent, ServerEvent, to_room, to_self
from .messaging import (
    DEFAULT_CONVERSATION_BUFFER_SIZE,
    DEFAULT_REACTION_CACHE_SIZE,
    MessageIdGenerator,
    MessageRouter,
)
from .presence import PresencePublisher
from .registry import DEFAULT_AVATAR_TEMPLATE, ConnectionRegistry
from .rooms import RoomDirectory
from .schemas import (
    MessageSendPayload,
    PrivateReadPayload,
    PrivateSendPayload,
    ReactionPayload,
    ReadPayload,
    RoomSwitchPayload,
    SystemMessage,
    TypingPayload,
    UserProfile,
)

logger = logging.getLogger(__name__)

DEFAULT_ROOMS: Tuple[Tuple[str, str], ...] = (
    ("general", "General"),
    ("random", "Random"),
    ("tech", "Tech Talk"),
)
DEFAULT_ROOM = "general"

Handler = Callable[[str, Any], List[OutboundEvent]]


class MetricsHook:
    """Counters the controller bumps after transitions. No-op by default.

    ``monitoring.service.MonitoringService`` provides the real counters.
    """

    def increment_socket_connections(self) -> None:
        pass

    def increment_messages(self) -> None:
        pass

    def increment_errors(self) -> None:
        pass


class ChatState:
    """Every piece of mutable chat state, in one container.

    Attributes:
        connections: Live transport tokens in connect order (dict as an
            ordered set). Includes connections that never joined.
        registry: Connection Registry (owns Users).
        rooms: Room Directory (owns Rooms and membership).
        router: Message Router (owns conversation buffers and reactions).
        presence: Presence Publisher over registry and rooms.
    """

    def __init__(
        self,
        rooms: Sequence[Tuple[str, str]] = DEFAULT_ROOMS,
        default_room: str = DEFAULT_ROOM,
        avatar_template: str = DEFAULT_AVATAR_TEMPLATE,
        conversation_buffer_size: int = DEFAULT_CONVERSATION_BUFFER_SIZE,
        reaction_cache_size: int = DEFAULT_REACTION_CACHE_SIZE,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if default_room not in {room_id for room_id, _ in rooms}:
            raise ValueError(f"default room {default_room!r} is not a seeded room")
        self.seeds = list(rooms)
        self.default_room = default_room
        self.avatar_template = avatar_template
        self.conversation_buffer_size = conversation_buffer_size
        self.reaction_cache_size = reaction_cache_size
        self.clock = clock
        self.reset()

    def reset(self) -> None:
        """Drop all users, memberships and conversations; reseed rooms."""
        self.connections: Dict[str, None] = {}
        self.next_id = MessageIdGenerator(self.clock)
        self.registry = ConnectionRegistry(self.avatar_template)
        self.rooms = RoomDirectory(self.registry, self.seeds)
        self.router = MessageRouter(
            self.registry,
            self.rooms,
            self.next_id,
            conversation_buffer_size=self.conversation_buffer_size,
            reaction_cache_size=self.reaction_cache_size,
        )
        self.presence = PresencePublisher(self.registry, self.rooms)

    @classmethod
    def from_settings(cls, settings) -> "ChatState":
        """Build from ``config.ChatSettings``."""
        return cls(
            rooms=[(room.id, room.name) for room in settings.rooms],
            default_room=settings.default_room,
            avatar_template=settings.avatar_url_template,
            conversation_buffer_size=settings.conversation_buffer_size,
            reaction_cache_size=settings.reaction_cache_size,
        )


class SessionLifecycleController:
    """Owns connect/join/room-switch/disconnect and dispatches chat events."""

    def __init__(self, state: ChatState, metrics: Optional[MetricsHook] = None) -> None:
        self.state = state
        self.metrics = metrics or MetricsHook()
        self._lock = threading.Lock()
        self.handlers: Dict[ClientEvent, Tuple[Type[BaseModel], Handler]] = {
            ClientEvent.JOIN: (UserProfile, self.on_join),
            ClientEvent.ROOM_SWITCH: (RoomSwitchPayload, self.on_room_switch),
            ClientEvent.MESSAGE_SEND: (MessageSendPayload, self.on_message),
            ClientEvent.PRIVATE_SEND: (PrivateSendPayload, self.on_private_message),
            ClientEvent.TYPING_START: (TypingPayload, self.on_typing_start),
            ClientEvent.TYPING_STOP: (TypingPayload, self.on_typing_stop),
            ClientEvent.REACT: (ReactionPayload, self.on_react),
            ClientEvent.READ: (ReadPayload, self.on_read),
            ClientEvent.PRIVATE_READ: (PrivateReadPayload, self.on_private_read),
        }

    # =========================================================================
    # Transport entry points (serialized)
    # =========================================================================

    def connect(self, token: str) -> List[OutboundEvent]:
        with self._lock:
            return self.on_connect(token)

    def disconnect(self, token: str) -> List[OutboundEvent]:
        with self._lock:
            return self.on_disconnect(token)

    def dispatch(self, token: str, event: Any, data: Any) -> List[OutboundEvent]:
        """Apply one inbound event and return what to deliver.

        Unknown events, malformed payloads and ``ChatError`` failures are
        logged and dropped. They never propagate to the transport.
        """
        try:
            kind = ClientEvent(event)
        except ValueError:
            logger.warning("Unknown event %r from %s dropped", event, token)
            self.metrics.increment_errors()
            return []

        model, handler = self.handlers[kind]
        with self._lock:
            try:
                payload = model.model_validate({} if data is None else data)
                return handler(token, payload)
            except ValidationError as exc:
                logger.warning(
                    "Malformed %s payload from %s dropped: %s",
                    kind.value, token, exc.errors(include_url=False),
                )
            except ChatError as exc:
                logger.info("%s from %s dropped: %s", kind.value, token, exc)
        self.metrics.increment_errors()
        return []

    def snapshot(self) -> Dict[str, Any]:
        """Live counts and room list, read on demand by the health endpoint."""
        with self._lock:
            return {
                "users": len(self.state.registry),
                "connections": len(self.state.connections),
                "rooms": self.state.presence.rooms_snapshot(),
            }

    # =========================================================================
    # Lifecycle transitions
    # =========================================================================

    def on_connect(self, token: str) -> List[OutboundEvent]:
        self.state.connections[token] = None
        self.metrics.increment_socket_connections()
        logger.info("Connection %s opened (%d live)", token, len(self.state.connections))
        return []

    def on_join(self, token: str, profile: UserProfile) -> List[OutboundEvent]:
        state = self.state
        # A join implies a live transport even if connect was never reported
        state.connections.setdefault(token, None)

        user = state.registry.register(token, profile)
        state.rooms.join(token, state.default_room)
        user.currentRoom = state.default_room
        logger.info("%s joined as %s in %s", token, user.username, state.default_room)

        return [
            to_self(token, ServerEvent.USER_JOINED, {
                "user": user.model_dump(),
                "rooms": state.presence.rooms_snapshot(),
            }),
            state.presence.users_update(state.connections),
            self._system(state.default_room, f"{user.username} joined the chat"),
        ]

    def on_room_switch(self, token: str, payload: RoomSwitchPayload) -> List[OutboundEvent]:
        state = self.state
        user = state.registry.lookup(token)
        target = payload.roomId
        if not state.rooms.has(target):
            logger.info("%s asked for unknown room %s; ignoring", user.username, target)
            return []

        events: List[OutboundEvent] = []
        previous = user.currentRoom
        if previous is not None:
            state.rooms.leave(token, previous)
            events.append(self._system(previous, f"{user.username} left the room"))

        room = state.rooms.join(token, target)
        user.currentRoom = target
        logger.info("%s switched from %s to %s", user.username, previous, target)

        events.append(self._system(target, f"{user.username} joined the room"))
        events.append(to_self(token, ServerEvent.ROOM_JOINED, {
            "roomId": target,
            "roomName": room.name,
        }))
        events.append(state.presence.rooms_update(state.connections))
        return events

    def on_disconnect(self, token: str) -> List[OutboundEvent]:
        state = self.state
        state.connections.pop(token, None)
        user = state.registry.get(token)
        if user is None:
            logger.debug("Connection %s closed before joining", token)
            return []

        events: List[OutboundEvent] = []
        if user.currentRoom is not None:
            state.rooms.leave(token, user.currentRoom)
            events.append(self._system(user.currentRoom, f"{user.username} left the chat"))

        state.registry.remove(token)
        dropped = state.router.drop_conversations(token)
        logger.info(
            "User disconnected: %s (%s), %d conversation(s) dropped",
            user.username, token, dropped,
        )

        events.append(state.presence.users_update(state.connections))
        events.append(state.presence.rooms_update(state.connections))
        return events

    # =========================================================================
    # Message routing
    # =========================================================================

    def on_message(self, token: str, payload: MessageSendPayload) -> List[OutboundEvent]:
        events = self.state.router.send_room(token, payload)
        self.metrics.increment_messages()
        return events

    def on_private_message(self, token: str, payload: PrivateSendPayload) -> List[OutboundEvent]:
        events = self.state.router.send_private(token, payload)
        if events:
            self.metrics.increment_messages()
        return events

    def on_typing_start(self, token: str, payload: TypingPayload) -> List[OutboundEvent]:
        return self.state.router.typing(token, payload, is_typing=True)

    def on_typing_stop(self, token: str, payload: TypingPayload) -> List[OutboundEvent]:
        return self.state.router.typing(token, payload, is_typing=False)

    def on_react(self, token: str, payload: ReactionPayload) -> List[OutboundEvent]:
        return self.state.router.react(token, payload)

    def on_read(self, token: str, payload: ReadPayload) -> List[OutboundEvent]:
        return self.state.router.mark_read(token, payload)

    def on_private_read(self, token: str, payload: PrivateReadPayload) -> List[OutboundEvent]:
        return self.state.router.mark_private_read(token, payload)

    def _system(self, room_id: str, content: str) -> OutboundEvent:
        message = SystemMessage(id=self.state.next_id(), content=content, room=room_id)
        return to_room(
            self.state.rooms.members(room_id),
            ServerEvent.MESSAGE_RECEIVE,
            message.model_dump(mode="json"),
        )
