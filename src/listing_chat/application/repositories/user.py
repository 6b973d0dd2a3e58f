from __future__ import annotations

from typing import Protocol
from uuid import UUID

from listing_chat.domain.entities.user import UserSummary


class UserReader(Protocol):
    async def get_summary(self, user_id: UUID) -> UserSummary | None: ...

    async def get_summaries(self, user_ids: set[UUID]) -> dict[UUID, UserSummary]: ...
