from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from listing_chat.domain.entities.listing import ListingSummary
from listing_chat.infrastructure.db.mappers.directory import listing_to_summary
from listing_chat.infrastructure.db.models.listing import ListingImageModel, ListingModel


class ListingReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_summary(self, listing_id: UUID) -> ListingSummary | None:
        listing = await self._session.get(ListingModel, listing_id)
        if listing is None:
            return None
        stmt = (
            select(ListingImageModel.image_url)
            .where(
                ListingImageModel.listing_id == listing_id,
                ListingImageModel.is_primary.is_(True),
            )
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return listing_to_summary(listing, result.scalar_one_or_none())
