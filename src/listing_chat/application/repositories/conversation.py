from __future__ import annotations

from datetime import datetime
from typing import Protocol
from uuid import UUID

from listing_chat.domain.entities.conversation import Conversation


class ConversationReader(Protocol):
    async def get_by_id(self, conversation_id: UUID) -> Conversation | None: ...

    async def get_by_pair(
        self, listing_id: UUID, buyer_id: UUID,
    ) -> Conversation | None:
        """Find the conversation a buyer opened on a listing."""
        ...

    async def list_for_user(
        self, user_id: UUID, *, offset: int = 0, limit: int = 20
    ) -> list[Conversation]:
        """Conversations where the user is buyer or seller, newest activity first."""
        ...

    async def count_for_user(self, user_id: UUID) -> int: ...

    async def list_ids_for_user(self, user_id: UUID) -> list[UUID]: ...


class ConversationWriter(Protocol):
    async def create_if_not_exists(
        self, conversation: Conversation
    ) -> tuple[Conversation, bool]:
        """Insert unless the (listing, buyer) pair exists. Return (conversation, created)."""
        ...

    async def touch_last_message_at(
        self, conversation_id: UUID, ts: datetime
    ) -> None:
        """Advance last_message_at to ts unless it is already later."""
        ...

    async def delete(self, conversation_id: UUID) -> None: ...
