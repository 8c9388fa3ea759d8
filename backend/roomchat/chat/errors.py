"""Error taxonomy for the chat core.

None of these errors ever reach the client. The dispatch layer in
``lifecycle`` catches them, logs the reason and drops the triggering event.
"""


class ChatError(Exception):
    """Base class for chat core errors."""


class NotFound(ChatError):
    """Unknown connection, room or recipient."""


class DuplicateConnection(ChatError):
    """A User is already registered for this connection token."""


class UnknownRoom(NotFound):
    """The target room was never seeded."""
