"""In-process WebSocket connection manager."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable
from uuid import UUID

from fastapi import WebSocket

from listing_chat.application.dto.principal import Principal
from listing_chat.domain.entities.user import UserSummary
from listing_chat.domain.value_objects.enums import ConnectionState
from listing_chat.infrastructure.ws.presence import PresenceRegistry
from listing_chat.infrastructure.ws.protocol import WsOutbound
from listing_chat.infrastructure.ws.rooms import RoomMembershipTracker

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Connection:
    id: str
    websocket: WebSocket
    principal: Principal
    user: UserSummary | None = None
    state: ConnectionState = ConnectionState.CONNECTING
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def user_id(self) -> UUID:
        return self.principal.user_id


class ConnectionManager:
    """Routes server events to live connections by id, user, room or everyone.

    User and room addressing resolve through the presence registry and the
    room tracker; this class only owns the sockets.
    """

    def __init__(self, presence: PresenceRegistry, rooms: RoomMembershipTracker) -> None:
        self._presence = presence
        self._rooms = rooms
        self._connections: dict[str, Connection] = {}

    def add(self, conn: Connection) -> None:
        self._connections[conn.id] = conn
        logger.debug("WS connected: %s user=%s (total=%d)", conn.id, conn.user_id, len(self._connections))

    def remove(self, connection_id: str) -> Connection | None:
        conn = self._connections.pop(connection_id, None)
        if conn is not None:
            logger.debug("WS disconnected: %s user=%s", connection_id, conn.user_id)
        return conn

    def get(self, connection_id: str) -> Connection | None:
        return self._connections.get(connection_id)

    def is_active(self, connection_id: str) -> bool:
        conn = self._connections.get(connection_id)
        return conn is not None and conn.state == ConnectionState.ACTIVE

    def __len__(self) -> int:
        return len(self._connections)

    async def send_to_connection(self, connection_id: str, event_type: str, data: Any) -> None:
        await self._deliver([connection_id], event_type, data)

    async def send_to_user(self, user_id: UUID, event_type: str, data: Any) -> None:
        await self._deliver(self._presence.connections_for(user_id), event_type, data)

    async def send_to_users(self, user_ids: Iterable[UUID], event_type: str, data: Any) -> None:
        targets: set[str] = set()
        for user_id in user_ids:
            targets |= self._presence.connections_for(user_id)
        await self._deliver(targets, event_type, data)

    async def send_to_room(
        self,
        conversation_id: UUID,
        event_type: str,
        data: Any,
        *,
        exclude_user: UUID | None = None,
    ) -> None:
        """Send a WS message to every connection joined to a conversation."""
        await self._deliver(
            self._rooms.members(conversation_id), event_type, data, exclude_user=exclude_user,
        )

    async def send_to_all(
        self,
        event_type: str,
        data: Any,
        *,
        exclude_user: UUID | None = None,
    ) -> None:
        await self._deliver(list(self._connections), event_type, data, exclude_user=exclude_user)

    async def _deliver(
        self,
        connection_ids: Iterable[str],
        event_type: str,
        data: Any,
        *,
        exclude_user: UUID | None = None,
    ) -> None:
        raw = WsOutbound(type=event_type, data=data).model_dump_json()
        for connection_id in connection_ids:
            conn = self._connections.get(connection_id)
            if conn is None or conn.state == ConnectionState.CLOSED:
                continue
            if exclude_user is not None and conn.user_id == exclude_user:
                continue
            try:
                await conn.websocket.send_text(raw)
            except Exception:
                # The read loop of a dead socket ends on its own and runs cleanup.
                logger.debug("WS send failed: %s %s", connection_id, event_type, exc_info=True)
