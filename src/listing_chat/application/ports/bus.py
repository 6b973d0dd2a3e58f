from __future__ import annotations

from typing import Any, Protocol
from uuid import UUID


class EventBroadcaster(Protocol):
    """Delivers server events to connected realtime clients."""

    async def send_to_connection(
        self, connection_id: str, event_type: str, data: Any
    ) -> None: ...

    async def send_to_user(
        self, user_id: UUID, event_type: str, data: Any
    ) -> None: ...

    async def send_to_room(
        self,
        conversation_id: UUID,
        event_type: str,
        data: Any,
        *,
        exclude_user: UUID | None = None,
    ) -> None: ...

    async def send_to_all(
        self,
        event_type: str,
        data: Any,
        *,
        exclude_user: UUID | None = None,
    ) -> None: ...
