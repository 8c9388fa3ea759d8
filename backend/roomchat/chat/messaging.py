"""Message Router for room broadcasts, private messages and side-channel events.

Every routing method validates the sender, builds the message, and returns
the outbound events with recipients resolved from the current room
membership. Nothing here performs I/O.

Private conversations are kept in per-pair buffers. The pair key is the two
connection tokens in sorted order, so (A, B) and (B, A) share one buffer.
Buffers are bounded; the oldest messages fall off first.
"""
import logging
import time
from collections import OrderedDict, deque
from typing import Callable, Deque, Dict, List, Set, Tuple

from .errors import NotFound
from .events import (
    OutboundEvent,
    Scope,
    ServerEvent,
    to_connection,
    to_room,
    to_self,
)
from .registry import ConnectionRegistry
from .rooms import RoomDirectory
from .schemas import (
    MessageId,
    MessageSendPayload,
    PrivateMessage,
    PrivateReadPayload,
    PrivateSendPayload,
    ReactionPayload,
    ReadPayload,
    RecipientSummary,
    SenderSummary,
    TypingPayload,
    User,
    UserMessage,
)

logger = logging.getLogger(__name__)

# Default number of private messages kept per conversation
DEFAULT_CONVERSATION_BUFFER_SIZE = 500

# Default number of messages whose reactions are tracked (LRU)
DEFAULT_REACTION_CACHE_SIZE = 10000

ConversationKey = Tuple[str, str]


class MessageIdGenerator:
    """Millisecond-clock message ids, strictly increasing within the process."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._last = 0

    def __call__(self) -> int:
        candidate = int(self._clock() * 1000)
        self._last = max(candidate, self._last + 1)
        return self._last


def conversation_key(first: str, second: str) -> ConversationKey:
    """Canonical key for the conversation between two connections."""
    return (first, second) if first <= second else (second, first)


def _sender_summary(user: User) -> SenderSummary:
    return SenderSummary(id=user.id, username=user.username, avatar=user.avatar)


class MessageRouter:
    """Validates and addresses chat traffic.

    Attributes:
        conversations: Pair key -> bounded buffer of private messages.
        reactions: (room, messageId) -> reaction kind -> reactor tokens,
            kept as an LRU of at most ``reaction_cache_size`` messages.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        rooms: RoomDirectory,
        next_id: Callable[[], int],
        conversation_buffer_size: int = DEFAULT_CONVERSATION_BUFFER_SIZE,
        reaction_cache_size: int = DEFAULT_REACTION_CACHE_SIZE,
    ) -> None:
        self._registry = registry
        self._rooms = rooms
        self._next_id = next_id
        # 0 means unbounded
        self.conversation_buffer_size = conversation_buffer_size or None
        self.reaction_cache_size = reaction_cache_size
        self.conversations: Dict[ConversationKey, Deque[PrivateMessage]] = {}
        self.reactions: "OrderedDict[Tuple[str, str], Dict[str, Set[str]]]" = OrderedDict()

    # =========================================================================
    # Room broadcast
    # =========================================================================

    def send_room(self, token: str, payload: MessageSendPayload) -> List[OutboundEvent]:
        """Broadcast a user message to a room, sender included.

        The target room defaults to the sender's current room. The sender
        also gets a ``message:sent`` confirmation carrying only the id.

        Raises:
            NotFound: Sender is not joined, or has no room and named none.
            UnknownRoom: The target room does not exist.
        """
        sender = self._registry.lookup(token)
        room_id = payload.room or sender.currentRoom
        if room_id is None:
            raise NotFound(f"connection {token} has no current room")
        self._rooms.get(room_id)

        message = UserMessage(
            id=self._next_id(),
            content=payload.content,
            sender=_sender_summary(sender),
            room=room_id,
            readBy=[token],
        )
        logger.info(
            "Message %s from %s to room %s: %s",
            message.id, sender.username, room_id, payload.content[:50],
        )
        return [
            to_room(
                self._rooms.members(room_id),
                ServerEvent.MESSAGE_RECEIVE,
                message.model_dump(mode="json"),
            ),
            to_self(token, ServerEvent.MESSAGE_SENT, {"messageId": message.id, "success": True}),
        ]

    # =========================================================================
    # Private messages
    # =========================================================================

    def send_private(self, token: str, payload: PrivateSendPayload) -> List[OutboundEvent]:
        """Deliver a private message to the recipient and back to the sender.

        Best effort: an unknown sender or recipient is logged and nothing is
        emitted or buffered.
        """
        sender = self._registry.get(token)
        recipient = self._registry.get(payload.recipientId)
        if sender is None or recipient is None:
            logger.info(
                "Dropping private message from %s to %s: participant not joined",
                token, payload.recipientId,
            )
            return []

        message = PrivateMessage(
            id=self._next_id(),
            content=payload.content,
            sender=_sender_summary(sender),
            recipient=RecipientSummary(id=recipient.id, username=recipient.username),
        )
        self._append(conversation_key(sender.id, recipient.id), message)

        # A message to oneself is delivered once
        recipients = list(dict.fromkeys([recipient.id, sender.id]))
        return [
            OutboundEvent(
                event=ServerEvent.PRIVATE_RECEIVE,
                data=message.model_dump(mode="json"),
                scope=Scope.CONNECTION,
                recipients=recipients,
            )
        ]

    def _append(self, key: ConversationKey, message: PrivateMessage) -> None:
        buffer = self.conversations.get(key)
        if buffer is None:
            buffer = deque(maxlen=self.conversation_buffer_size)
            self.conversations[key] = buffer
        buffer.append(message)

    def conversation(self, first: str, second: str) -> List[PrivateMessage]:
        """Private messages between two connections, oldest first."""
        return list(self.conversations.get(conversation_key(first, second), ()))

    def drop_conversations(self, token: str) -> int:
        """Forget every conversation involving ``token``. Returns the count."""
        keys = [key for key in self.conversations if token in key]
        for key in keys:
            del self.conversations[key]
        return len(keys)

    # =========================================================================
    # Typing indicators
    # =========================================================================

    def typing(
        self, token: str, payload: TypingPayload, is_typing: bool
    ) -> List[OutboundEvent]:
        """Relay a typing start/stop.

        Private mode goes to the recipient only; room mode goes to every
        other member of the named room. Nothing is stored.

        Raises:
            NotFound: Sender is not joined.
        """
        user = self._registry.lookup(token)

        if payload.isPrivate and payload.recipientId:
            if payload.recipientId not in self._registry:
                logger.debug("Typing for absent recipient %s ignored", payload.recipientId)
                return []
            return [
                to_connection(payload.recipientId, ServerEvent.TYPING_UPDATE, {
                    "userId": token,
                    "username": user.username,
                    "isTyping": is_typing,
                    "isPrivate": True,
                })
            ]

        if payload.room and self._rooms.has(payload.room):
            others = [m for m in self._rooms.members(payload.room) if m != token]
            return [
                to_room(others, ServerEvent.TYPING_UPDATE, {
                    "userId": token,
                    "username": user.username,
                    "isTyping": is_typing,
                    "room": payload.room,
                })
            ]

        logger.debug("Typing from %s has no usable target", token)
        return []

    # =========================================================================
    # Reactions
    # =========================================================================

    def react(self, token: str, payload: ReactionPayload) -> List[OutboundEvent]:
        """Record a reaction and broadcast it to the whole room.

        Reacting twice with the same kind is last-write-wins: the reactor is
        recorded once per (user, reaction kind).

        Raises:
            NotFound: Sender is not joined.
            UnknownRoom: The room does not exist.
        """
        user = self._registry.lookup(token)
        self._rooms.get(payload.room)

        key = (payload.room, str(payload.messageId))
        kinds = self.reactions.get(key)
        if kinds is None:
            kinds = {}
            self.reactions[key] = kinds
        else:
            self.reactions.move_to_end(key)
        kinds.setdefault(payload.reaction, set()).add(token)

        while len(self.reactions) > self.reaction_cache_size:
            self.reactions.popitem(last=False)

        return [
            to_room(self._rooms.members(payload.room), ServerEvent.MESSAGE_REACTION, {
                "messageId": payload.messageId,
                "reaction": payload.reaction,
                "userId": token,
                "username": user.username,
                "reactions": {kind: sorted(users) for kind, users in kinds.items()},
            })
        ]

    def reactions_for(self, room_id: str, message_id: MessageId) -> Dict[str, Set[str]]:
        return self.reactions.get((room_id, str(message_id)), {})

    # =========================================================================
    # Read receipts
    # =========================================================================

    def mark_read(self, token: str, payload: ReadPayload) -> List[OutboundEvent]:
        """Tell the room that ``token`` read a message. No tally is kept.

        Raises:
            NotFound: Reader is not joined.
            UnknownRoom: The room does not exist.
        """
        self._registry.lookup(token)
        self._rooms.get(payload.room)
        return [
            to_room(self._rooms.members(payload.room), ServerEvent.MESSAGE_READ_UPDATE, {
                "messageId": payload.messageId,
                "readBy": token,
            })
        ]

    def mark_private_read(self, token: str, payload: PrivateReadPayload) -> List[OutboundEvent]:
        """Tell the original sender that ``token`` read their private messages.

        Raises:
            NotFound: Reader or original sender is not joined.
        """
        self._registry.lookup(token)
        self._registry.lookup(payload.senderId)
        return [
            to_connection(payload.senderId, ServerEvent.PRIVATE_READ_UPDATE, {"readBy": token})
        ]
