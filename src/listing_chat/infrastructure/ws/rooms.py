"""Per-connection conversation room membership."""
from __future__ import annotations

from typing import Iterable
from uuid import UUID


class RoomMembershipTracker:
    def __init__(self) -> None:
        self._rooms_by_connection: dict[str, set[UUID]] = {}
        self._members: dict[UUID, set[str]] = {}

    def join(self, connection_id: str, conversation_id: UUID) -> bool:
        """Subscribe a connection to a room. Return False if already a member."""
        rooms = self._rooms_by_connection.setdefault(connection_id, set())
        if conversation_id in rooms:
            return False
        rooms.add(conversation_id)
        self._members.setdefault(conversation_id, set()).add(connection_id)
        return True

    def join_many(self, connection_id: str, conversation_ids: Iterable[UUID]) -> int:
        return sum(1 for cid in conversation_ids if self.join(connection_id, cid))

    def leave(self, connection_id: str, conversation_id: UUID) -> bool:
        rooms = self._rooms_by_connection.get(connection_id)
        if not rooms or conversation_id not in rooms:
            return False
        rooms.discard(conversation_id)
        if not rooms:
            del self._rooms_by_connection[connection_id]
        members = self._members.get(conversation_id)
        if members is not None:
            members.discard(connection_id)
            if not members:
                del self._members[conversation_id]
        return True

    def leave_all(self, connection_id: str) -> set[UUID]:
        rooms = self.rooms_for(connection_id)
        for conversation_id in rooms:
            self.leave(connection_id, conversation_id)
        return rooms

    def close_room(self, conversation_id: UUID) -> set[str]:
        """Remove every member from a room, e.g. after the conversation is deleted."""
        members = self.members(conversation_id)
        for connection_id in members:
            self.leave(connection_id, conversation_id)
        return members

    def rooms_for(self, connection_id: str) -> set[UUID]:
        return set(self._rooms_by_connection.get(connection_id, ()))

    def members(self, conversation_id: UUID) -> set[str]:
        return set(self._members.get(conversation_id, ()))
