"""Presence Publisher: read-only projections of users and rooms."""
from typing import Any, Dict, Iterable, List

from .events import OutboundEvent, ServerEvent, to_all
from .registry import ConnectionRegistry
from .rooms import RoomDirectory


class PresencePublisher:
    """Builds user and room snapshots. Never mutates either store."""

    def __init__(self, registry: ConnectionRegistry, rooms: RoomDirectory) -> None:
        self._registry = registry
        self._rooms = rooms

    def users_snapshot(self) -> List[Dict[str, Any]]:
        """All registered users in registration order."""
        return [user.model_dump() for user in self._registry.users()]

    def rooms_snapshot(self) -> List[Dict[str, Any]]:
        return [summary.model_dump() for summary in self._rooms.summaries()]

    def users_update(self, connections: Iterable[str]) -> OutboundEvent:
        return to_all(connections, ServerEvent.USERS_UPDATE, self.users_snapshot())

    def rooms_update(self, connections: Iterable[str]) -> OutboundEvent:
        return to_all(connections, ServerEvent.ROOMS_UPDATE, self.rooms_snapshot())
