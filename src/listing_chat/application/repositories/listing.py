from __future__ import annotations

from typing import Protocol
from uuid import UUID

from listing_chat.domain.entities.listing import ListingSummary


class ListingReader(Protocol):
    async def get_summary(self, listing_id: UUID) -> ListingSummary | None: ...
