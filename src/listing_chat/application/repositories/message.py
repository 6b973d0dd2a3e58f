from __future__ import annotations

from datetime import datetime
from typing import Protocol
from uuid import UUID

from listing_chat.domain.entities.message import Message


class MessageReader(Protocol):
    async def list_messages(
        self,
        conversation_id: UUID,
        *,
        offset: int = 0,
        limit: int = 50,
        before: datetime | None = None,
    ) -> list[Message]:
        """Return a page of messages newest-first."""
        ...

    async def count_messages(
        self, conversation_id: UUID, *, before: datetime | None = None
    ) -> int: ...

    async def latest(self, conversation_id: UUID) -> Message | None: ...

    async def count_unread(self, conversation_id: UUID, reader_id: UUID) -> int: ...

    async def count_unread_for_user(self, user_id: UUID) -> int: ...


class MessageWriter(Protocol):
    async def create(self, message: Message) -> Message: ...

    async def mark_read(self, conversation_id: UUID, reader_id: UUID) -> int:
        """Flip is_read on messages not sent by reader. Return rows changed."""
        ...

    async def delete_for_conversation(self, conversation_id: UUID) -> int: ...
