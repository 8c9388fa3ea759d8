"""Tests for the Message Router: room broadcast, private messages, typing,
reactions and read receipts."""
import pytest

from roomchat.chat.errors import NotFound, UnknownRoom
from roomchat.chat.events import Scope, ServerEvent
from roomchat.chat.lifecycle import ChatState
from roomchat.chat.messaging import MessageIdGenerator, conversation_key
from roomchat.chat.schemas import (
    MessageSendPayload,
    PrivateReadPayload,
    PrivateSendPayload,
    ReactionPayload,
    ReadPayload,
    TypingPayload,
    UserProfile,
)


@pytest.fixture
def room_pair(controller, join):
    """alice and bob joined to general; carol joined then moved to tech."""
    join("alice", "Alice")
    join("bob", "Bob")
    join("carol", "Carol")
    controller.dispatch("carol", "room:join", {"roomId": "tech"})
    return controller.state.router


class TestRoomBroadcast:

    def test_defaults_to_current_room_and_echoes_sender(self, room_pair, state):
        """A message without a room lands in the sender's room, sender included."""
        events = room_pair.send_room("alice", MessageSendPayload(content="hi"))

        broadcast, ack = events
        assert broadcast.event == ServerEvent.MESSAGE_RECEIVE
        assert broadcast.scope == Scope.ROOM
        assert sorted(broadcast.recipients) == ["alice", "bob"]
        assert broadcast.data["type"] == "user"
        assert broadcast.data["room"] == "general"
        assert broadcast.data["content"] == "hi"
        assert broadcast.data["sender"]["username"] == "Alice"
        assert broadcast.data["reactions"] == {}
        assert broadcast.data["readBy"] == ["alice"]

        assert ack.event == ServerEvent.MESSAGE_SENT
        assert ack.recipients == ["alice"]
        assert ack.data == {"messageId": broadcast.data["id"], "success": True}

    def test_explicit_room(self, room_pair):
        events = room_pair.send_room("alice", MessageSendPayload(content="yo", room="tech"))
        assert events[0].recipients == ["carol"]
        assert events[0].data["room"] == "tech"

    def test_unknown_room_raises(self, room_pair):
        with pytest.raises(UnknownRoom):
            room_pair.send_room("alice", MessageSendPayload(content="x", room="nope"))

    def test_unregistered_sender_raises(self, room_pair):
        with pytest.raises(NotFound):
            room_pair.send_room("ghost", MessageSendPayload(content="boo"))

    def test_message_ids_increase(self, room_pair):
        first = room_pair.send_room("alice", MessageSendPayload(content="1"))[0]
        second = room_pair.send_room("alice", MessageSendPayload(content="2"))[0]
        assert second.data["id"] > first.data["id"]


class TestPrivateMessages:

    def test_delivered_to_recipient_and_sender(self, room_pair):
        events = room_pair.send_private(
            "alice", PrivateSendPayload(recipientId="carol", content="hey")
        )
        assert len(events) == 1
        event = events[0]
        assert event.event == ServerEvent.PRIVATE_RECEIVE
        assert event.recipients == ["carol", "alice"]
        assert event.data["type"] == "private"
        assert event.data["recipient"] == {"id": "carol", "username": "Carol"}
        assert event.data["read"] is False

    def test_buffer_is_shared_by_both_directions(self, room_pair):
        room_pair.send_private("alice", PrivateSendPayload(recipientId="bob", content="1"))
        room_pair.send_private("bob", PrivateSendPayload(recipientId="alice", content="2"))

        forward = room_pair.conversation("alice", "bob")
        backward = room_pair.conversation("bob", "alice")
        assert [m.content for m in forward] == ["1", "2"]
        assert forward == backward
        assert conversation_key("bob", "alice") == conversation_key("alice", "bob")

    def test_unknown_recipient_emits_nothing(self, room_pair):
        events = room_pair.send_private(
            "alice", PrivateSendPayload(recipientId="ghost", content="anyone?")
        )
        assert events == []
        assert room_pair.conversations == {}

    def test_unknown_sender_emits_nothing(self, room_pair):
        events = room_pair.send_private(
            "ghost", PrivateSendPayload(recipientId="alice", content="boo")
        )
        assert events == []
        assert room_pair.conversations == {}

    def test_message_to_self_delivered_once(self, room_pair):
        events = room_pair.send_private(
            "alice", PrivateSendPayload(recipientId="alice", content="note")
        )
        assert events[0].recipients == ["alice"]

    def test_drop_conversations(self, room_pair):
        room_pair.send_private("alice", PrivateSendPayload(recipientId="bob", content="1"))
        room_pair.send_private("carol", PrivateSendPayload(recipientId="bob", content="2"))
        room_pair.send_private("alice", PrivateSendPayload(recipientId="carol", content="3"))

        assert room_pair.drop_conversations("bob") == 2
        assert list(room_pair.conversations) == [conversation_key("alice", "carol")]


def test_conversation_buffer_keeps_newest():
    """Only the configured number of messages is kept per pair."""
    state = ChatState(conversation_buffer_size=2)
    for token, name in [("a", "A"), ("b", "B")]:
        state.registry.register(token, UserProfile(username=name))
    for text in ["one", "two", "three"]:
        state.router.send_private("a", PrivateSendPayload(recipientId="b", content=text))
    assert [m.content for m in state.router.conversation("a", "b")] == ["two", "three"]


class TestTyping:

    def test_room_typing_excludes_sender(self, room_pair):
        events = room_pair.typing("alice", TypingPayload(room="general"), is_typing=True)
        assert events[0].event == ServerEvent.TYPING_UPDATE
        assert events[0].recipients == ["bob"]
        assert events[0].data == {
            "userId": "alice",
            "username": "Alice",
            "isTyping": True,
            "room": "general",
        }

    def test_private_typing_goes_to_recipient_only(self, room_pair):
        events = room_pair.typing(
            "alice", TypingPayload(isPrivate=True, recipientId="carol"), is_typing=False
        )
        assert events[0].recipients == ["carol"]
        assert events[0].data["isPrivate"] is True
        assert events[0].data["isTyping"] is False

    def test_private_typing_to_absent_recipient(self, room_pair):
        events = room_pair.typing(
            "alice", TypingPayload(isPrivate=True, recipientId="ghost"), is_typing=True
        )
        assert events == []

    def test_typing_without_target(self, room_pair):
        assert room_pair.typing("alice", TypingPayload(), is_typing=True) == []
        assert room_pair.typing("alice", TypingPayload(room="nope"), is_typing=True) == []

    def test_unregistered_sender_raises(self, room_pair):
        with pytest.raises(NotFound):
            room_pair.typing("ghost", TypingPayload(room="general"), is_typing=True)


class TestReactions:

    def test_reaction_broadcast_to_whole_room(self, room_pair):
        events = room_pair.react(
            "bob", ReactionPayload(messageId=42, reaction="like", room="general")
        )
        event = events[0]
        assert event.event == ServerEvent.MESSAGE_REACTION
        assert sorted(event.recipients) == ["alice", "bob"]
        assert event.data["messageId"] == 42
        assert event.data["userId"] == "bob"
        assert event.data["username"] == "Bob"
        assert event.data["reactions"] == {"like": ["bob"]}

    def test_same_reaction_twice_is_recorded_once(self, room_pair):
        payload = ReactionPayload(messageId=42, reaction="like", room="general")
        room_pair.react("bob", payload)
        room_pair.react("alice", payload)
        events = room_pair.react("bob", payload)
        room_pair.react("bob", ReactionPayload(messageId=42, reaction="love", room="general"))

        assert events[0].data["reactions"] == {"like": ["alice", "bob"]}
        assert room_pair.reactions_for("general", 42) == {
            "like": {"alice", "bob"},
            "love": {"bob"},
        }

    def test_string_and_int_ids_share_one_aggregate(self, room_pair):
        room_pair.react("bob", ReactionPayload(messageId=42, reaction="like", room="general"))
        events = room_pair.react(
            "alice", ReactionPayload(messageId="42", reaction="like", room="general")
        )

        assert events[0].data["reactions"] == {"like": ["alice", "bob"]}
        assert room_pair.reactions_for("general", 42) == {"like": {"alice", "bob"}}
        assert len(room_pair.reactions) == 1

    def test_reaction_ledger_is_bounded(self):
        state = ChatState(reaction_cache_size=1)
        state.registry.register("a", UserProfile(username="A"))
        state.router.react("a", ReactionPayload(messageId=1, reaction="like", room="general"))
        state.router.react("a", ReactionPayload(messageId=2, reaction="like", room="general"))
        assert state.router.reactions_for("general", 1) == {}
        assert state.router.reactions_for("general", 2) == {"like": {"a"}}

    def test_unknown_room_raises(self, room_pair):
        with pytest.raises(UnknownRoom):
            room_pair.react("bob", ReactionPayload(messageId=1, reaction="like", room="nope"))


class TestReadReceipts:

    def test_room_read_broadcast(self, room_pair):
        events = room_pair.mark_read("bob", ReadPayload(messageId="99", room="general"))
        assert events[0].event == ServerEvent.MESSAGE_READ_UPDATE
        assert sorted(events[0].recipients) == ["alice", "bob"]
        assert events[0].data == {"messageId": "99", "readBy": "bob"}

    def test_private_read_notifies_sender_only(self, room_pair):
        events = room_pair.mark_private_read("bob", PrivateReadPayload(senderId="alice"))
        assert events[0].event == ServerEvent.PRIVATE_READ_UPDATE
        assert events[0].recipients == ["alice"]
        assert events[0].data == {"readBy": "bob"}

    def test_private_read_unknown_sender_raises(self, room_pair):
        with pytest.raises(NotFound):
            room_pair.mark_private_read("bob", PrivateReadPayload(senderId="ghost"))


def test_message_id_generator_is_strictly_increasing():
    """Ids never repeat even when the clock does not move."""
    generator = MessageIdGenerator(clock=lambda: 1000.0)
    ids = [generator() for _ in range(3)]
    assert ids == [1000000, 1000001, 1000002]
