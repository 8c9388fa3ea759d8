"""Room Directory: the seeded rooms and their member sets."""
import logging
from typing import Dict, Iterable, List, Set, Tuple

from pydantic import BaseModel, Field

from .errors import NotFound, UnknownRoom
from .registry import ConnectionRegistry
from .schemas import RoomSummary

logger = logging.getLogger(__name__)


class Room(BaseModel):
    """A named channel.

    Attributes:
        id: Room identifier used on the wire.
        name: Human-readable room name.
        members: Connection tokens of the users currently in the room.
    """
    id: str
    name: str
    members: Set[str] = Field(default_factory=set)


class RoomDirectory:
    """Owns Room records and their membership.

    Rooms are seeded once and never created or deleted afterwards. Only
    tokens registered in the ConnectionRegistry may become members.
    """

    def __init__(
        self, registry: ConnectionRegistry, seeds: Iterable[Tuple[str, str]]
    ) -> None:
        self._registry = registry
        # dicts keep insertion order, so summaries follow seed order
        self._rooms: Dict[str, Room] = {
            room_id: Room(id=room_id, name=name) for room_id, name in seeds
        }

    def has(self, room_id: str) -> bool:
        return room_id in self._rooms

    def get(self, room_id: str) -> Room:
        """Return the room.

        Raises:
            UnknownRoom: ``room_id`` was never seeded.
        """
        try:
            return self._rooms[room_id]
        except KeyError:
            raise UnknownRoom(f"unknown room {room_id}") from None

    def join(self, token: str, room_id: str) -> Room:
        """Add ``token`` to the room's members.

        Raises:
            UnknownRoom: ``room_id`` was never seeded.
            NotFound: ``token`` has no registered User.
        """
        room = self.get(room_id)
        if token not in self._registry:
            raise NotFound(f"no user for connection {token}")
        room.members.add(token)
        return room

    def leave(self, token: str, room_id: str) -> None:
        """Remove ``token`` from the room. Absent tokens and rooms are ignored."""
        room = self._rooms.get(room_id)
        if room is not None:
            room.members.discard(token)

    def members(self, room_id: str) -> List[str]:
        """Member tokens of a room, or an empty list for unknown rooms."""
        room = self._rooms.get(room_id)
        return list(room.members) if room is not None else []

    def rooms(self) -> List[Room]:
        return list(self._rooms.values())

    def summaries(self) -> List[RoomSummary]:
        return [
            RoomSummary(id=room.id, name=room.name, userCount=len(room.members))
            for room in self._rooms.values()
        ]
