"""Which users currently hold at least one realtime connection."""
from __future__ import annotations

import logging
from datetime import datetime
from uuid import UUID

from listing_chat.application.ports.clock import Clock, system_clock

logger = logging.getLogger(__name__)


class PresenceRegistry:
    """Tracks connections per user, keyed by connection id.

    A user is online while any of their connections is registered, so a
    second tab keeps them online after the first one closes.
    """

    def __init__(self, clock: Clock = system_clock) -> None:
        self._clock = clock
        self._entries: dict[UUID, dict[str, datetime]] = {}

    def connect(self, user_id: UUID, connection_id: str) -> bool:
        """Register a connection. Return True if it is the user's first."""
        conns = self._entries.get(user_id)
        first = not conns
        if conns is None:
            conns = self._entries[user_id] = {}
        conns[connection_id] = self._clock.now()
        logger.debug("Presence connect: %s/%s (connections=%d)", user_id, connection_id, len(conns))
        return first

    def disconnect(self, user_id: UUID, connection_id: str) -> bool:
        """Drop a connection. Return True if it was the user's last."""
        conns = self._entries.get(user_id)
        if not conns or connection_id not in conns:
            return False
        del conns[connection_id]
        if conns:
            return False
        del self._entries[user_id]
        return True

    def is_online(self, user_id: UUID) -> bool:
        return bool(self._entries.get(user_id))

    def list_online(self) -> set[UUID]:
        return set(self._entries)

    def connections_for(self, user_id: UUID) -> set[str]:
        return set(self._entries.get(user_id, ()))

    def online_since(self, user_id: UUID) -> datetime | None:
        conns = self._entries.get(user_id)
        return min(conns.values()) if conns else None
