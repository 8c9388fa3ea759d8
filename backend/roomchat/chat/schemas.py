"""Pydantic models for chat users, rooms, messages and inbound payloads.

Field names are camelCase because they go over the wire as-is.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Union

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator

# Message ids are ints generated here, but clients echo them back and older
# clients may send them as strings.
MessageId = Union[int, str]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Users and rooms
# =============================================================================


class UserProfile(BaseModel):
    """Payload of ``user:join``.

    Attributes:
        username: Display name. ``displayName`` is accepted as an alias.
        avatar: Optional avatar URL. A placeholder is derived from the
            username when absent.
    """
    username: str = Field(
        ...,
        validation_alias=AliasChoices("username", "displayName"),
        description="Display name shown in the UI",
    )
    avatar: Optional[str] = Field(default=None, description="Avatar URL")

    @field_validator("username")
    @classmethod
    def _username_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("username must not be empty")
        return value


class User(BaseModel):
    """A joined chat participant. ``id`` is its connection token."""
    id: str = Field(..., description="Connection token")
    username: str = Field(..., description="Display name")
    avatar: str = Field(..., description="Avatar URL")
    online: bool = Field(default=True, description="Online flag")
    currentRoom: Optional[str] = Field(default=None, description="Current room id")


class RoomSummary(BaseModel):
    id: str
    name: str
    userCount: int


# =============================================================================
# Messages
# =============================================================================


class MessageKind(str, Enum):
    """Kind of a routed message.

    Attributes:
        SYSTEM: Informational notice without a sender.
        USER: Broadcast to a room.
        PRIVATE: One sender, one recipient.
    """
    SYSTEM = "system"
    USER = "user"
    PRIVATE = "private"


class SenderSummary(BaseModel):
    id: str
    username: str
    avatar: str


class RecipientSummary(BaseModel):
    id: str
    username: str


class SystemMessage(BaseModel):
    id: int
    type: MessageKind = MessageKind.SYSTEM
    content: str
    timestamp: datetime = Field(default_factory=utcnow)
    room: str


class UserMessage(BaseModel):
    """Room broadcast. ``readBy`` starts with the sender."""
    id: int
    type: MessageKind = MessageKind.USER
    content: str
    sender: SenderSummary
    timestamp: datetime = Field(default_factory=utcnow)
    room: str
    reactions: Dict[str, List[str]] = Field(default_factory=dict)
    readBy: List[str] = Field(default_factory=list)


class PrivateMessage(BaseModel):
    id: int
    type: MessageKind = MessageKind.PRIVATE
    content: str
    sender: SenderSummary
    recipient: RecipientSummary
    timestamp: datetime = Field(default_factory=utcnow)
    read: bool = False


# =============================================================================
# Inbound payloads
# =============================================================================


class RoomSwitchPayload(BaseModel):
    roomId: str

    @model_validator(mode="before")
    @classmethod
    def _accept_bare_room_id(cls, data):
        # Older clients emit the bare room id.
        if isinstance(data, str):
            return {"roomId": data}
        return data


class MessageSendPayload(BaseModel):
    content: str
    room: Optional[str] = None

    @field_validator("content")
    @classmethod
    def _content_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("content is required")
        return value


class PrivateSendPayload(BaseModel):
    recipientId: str
    content: str

    @field_validator("content")
    @classmethod
    def _content_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("content is required")
        return value


class TypingPayload(BaseModel):
    """Typing indicator. Private mode needs ``isPrivate`` and ``recipientId``."""
    room: Optional[str] = None
    isPrivate: bool = False
    recipientId: Optional[str] = None


class ReactionPayload(BaseModel):
    messageId: MessageId
    reaction: str
    room: str


class ReadPayload(BaseModel):
    messageId: MessageId
    room: str


class PrivateReadPayload(BaseModel):
    senderId: str
