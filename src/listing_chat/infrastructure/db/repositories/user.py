from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from listing_chat.domain.entities.user import UserSummary
from listing_chat.infrastructure.db.mappers.directory import user_to_summary
from listing_chat.infrastructure.db.models.user import UserModel


class UserReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_summary(self, user_id: UUID) -> UserSummary | None:
        result = await self._session.get(UserModel, user_id)
        return user_to_summary(result) if result else None

    async def get_summaries(self, user_ids: set[UUID]) -> dict[UUID, UserSummary]:
        if not user_ids:
            return {}
        stmt = select(UserModel).where(UserModel.id.in_(user_ids))
        result = await self._session.execute(stmt)
        return {m.id: user_to_summary(m) for m in result.scalars().all()}
