from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from listing_chat.domain.entities.conversation import Conversation
from listing_chat.infrastructure.db.mappers import conversation as mapper
from listing_chat.infrastructure.db.models.conversation import ConversationModel


def _participant_filter(user_id: UUID):
    return or_(
        ConversationModel.buyer_id == user_id,
        ConversationModel.seller_id == user_id,
    )


class ConversationReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, conversation_id: UUID) -> Conversation | None:
        stmt = (
            select(ConversationModel)
            .where(ConversationModel.id == conversation_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def get_by_pair(
        self,
        listing_id: UUID,
        buyer_id: UUID,
    ) -> Conversation | None:
        stmt = (
            select(ConversationModel)
            .where(
                ConversationModel.listing_id == listing_id,
                ConversationModel.buyer_id == buyer_id,
            )
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def list_for_user(
        self,
        user_id: UUID,
        *,
        offset: int = 0,
        limit: int = 20,
    ) -> list[Conversation]:
        stmt = (
            select(ConversationModel)
            .where(_participant_filter(user_id))
            .order_by(ConversationModel.last_message_at.desc().nullslast(), ConversationModel.id)
            .offset(offset)
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]

    async def count_for_user(self, user_id: UUID) -> int:
        stmt = (
            select(func.count())
            .select_from(ConversationModel)
            .where(_participant_filter(user_id))
        )
        result = await self._session.execute(stmt)
        return int(result.scalar_one())

    async def list_ids_for_user(self, user_id: UUID) -> list[UUID]:
        stmt = select(ConversationModel.id).where(_participant_filter(user_id))
        result = await self._session.execute(stmt)
        return list(result.scalars().all())


class ConversationWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create_if_not_exists(
        self, conversation: Conversation
    ) -> tuple[Conversation, bool]:
        """Insert idempotently on (listing_id, buyer_id). Returns (conversation, created_flag)."""
        model = mapper.entity_to_model(conversation)
        values = {
            "id": model.id,
            "listing_id": model.listing_id,
            "buyer_id": model.buyer_id,
            "seller_id": model.seller_id,
            "last_message_at": model.last_message_at,
            "created_at": model.created_at,
            "updated_at": model.updated_at,
        }
        stmt = (
            pg_insert(ConversationModel)
            .values(**values)
            .on_conflict_do_nothing(constraint="uq_conversation_listing_buyer")
            .returning(ConversationModel)
        )
        result = await self._session.execute(stmt)
        row = result.scalar_one_or_none()

        if row is not None:
            return mapper.model_to_entity(row), True

        # Conflict — another request opened this thread first
        existing = await ConversationReaderRepo(self._session).get_by_pair(
            conversation.listing_id, conversation.buyer_id,
        )
        assert existing is not None
        return existing, False

    async def touch_last_message_at(
        self,
        conversation_id: UUID,
        ts: datetime,
    ) -> None:
        # GREATEST skips NULL, so the first bump sets the value outright
        stmt = (
            update(ConversationModel)
            .where(ConversationModel.id == conversation_id)
            .values(
                last_message_at=func.greatest(ConversationModel.last_message_at, ts),
                updated_at=func.greatest(ConversationModel.updated_at, ts),
            )
        )
        await self._session.execute(stmt)

    async def delete(self, conversation_id: UUID) -> None:
        stmt = delete(ConversationModel).where(ConversationModel.id == conversation_id)
        await self._session.execute(stmt)
