"""Event names and the outbound event envelope.

Handlers never talk to sockets. They return ``OutboundEvent`` objects whose
recipients are already resolved to connection tokens, and the transport
(``manager.ConnectionManager``) delivers them in order.
"""
from enum import Enum
from typing import Any, Dict, Iterable, List

from pydantic import BaseModel, Field


class ClientEvent(str, Enum):
    """Inbound event names sent by clients."""
    JOIN = "user:join"
    ROOM_SWITCH = "room:join"
    MESSAGE_SEND = "message:send"
    PRIVATE_SEND = "private:send"
    TYPING_START = "typing:start"
    TYPING_STOP = "typing:stop"
    REACT = "message:react"
    READ = "message:read"
    PRIVATE_READ = "private:read"


class ServerEvent(str, Enum):
    """Outbound event names sent to clients."""
    CONNECTED = "connected"
    USER_JOINED = "user:joined"
    USERS_UPDATE = "users:update"
    ROOMS_UPDATE = "rooms:update"
    ROOM_JOINED = "room:joined"
    MESSAGE_RECEIVE = "message:receive"
    MESSAGE_SENT = "message:sent"
    PRIVATE_RECEIVE = "private:receive"
    TYPING_UPDATE = "typing:update"
    MESSAGE_REACTION = "message:reaction"
    MESSAGE_READ_UPDATE = "message:read:update"
    PRIVATE_READ_UPDATE = "private:read:update"


class Scope(str, Enum):
    """How the recipients of an event were chosen.

    Attributes:
        SELF: The connection that triggered the event.
        CONNECTION: One other connection.
        ROOM: Members of a room (possibly minus the sender).
        ALL: Every live connection, joined or not.
    """
    SELF = "self"
    CONNECTION = "connection"
    ROOM = "room"
    ALL = "all"


class OutboundEvent(BaseModel):
    """One logical event addressed to a resolved set of connections."""
    event: ServerEvent
    data: Any = None
    scope: Scope
    recipients: List[str] = Field(default_factory=list)

    def to_wire(self) -> Dict[str, Any]:
        """Return the JSON frame sent to every recipient."""
        return {"event": self.event.value, "data": self.data}


def to_self(token: str, event: ServerEvent, data: Any) -> OutboundEvent:
    return OutboundEvent(event=event, data=data, scope=Scope.SELF, recipients=[token])


def to_connection(token: str, event: ServerEvent, data: Any) -> OutboundEvent:
    return OutboundEvent(event=event, data=data, scope=Scope.CONNECTION, recipients=[token])


def to_room(members: Iterable[str], event: ServerEvent, data: Any) -> OutboundEvent:
    return OutboundEvent(event=event, data=data, scope=Scope.ROOM, recipients=list(members))


def to_all(tokens: Iterable[str], event: ServerEvent, data: Any) -> OutboundEvent:
    return OutboundEvent(event=event, data=data, scope=Scope.ALL, recipients=list(tokens))
