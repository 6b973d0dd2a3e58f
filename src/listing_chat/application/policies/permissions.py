from __future__ import annotations

import logging
from uuid import UUID

from listing_chat.application.exceptions import ForbiddenError, NotFoundError
from listing_chat.application.uow import UnitOfWork, UoWFactory
from listing_chat.domain.entities.conversation import Conversation

logger = logging.getLogger(__name__)


def assert_conversation_access(
    user_id: UUID,
    conversation: Conversation | None,
) -> Conversation:
    """Raise if conversation doesn't exist or user is not buyer or seller.

    Existence is checked first; callers at the HTTP boundary present both
    failures the same way, but they stay distinct here for auditing.
    """
    if conversation is None:
        raise NotFoundError("Conversation not found")

    if not conversation.has_participant(user_id):
        raise ForbiddenError("Not a participant of this conversation")

    return conversation


async def can_access(conversation_id: UUID, user_id: UUID, uow: UnitOfWork) -> bool:
    conversation = await uow.conversations.get_by_id(conversation_id)
    return conversation is not None and conversation.has_participant(user_id)


class ConversationAccessPolicy:
    """Boolean access check with its own unit of work, for non-HTTP callers."""

    def __init__(self, uow_factory: UoWFactory) -> None:
        self._uow_factory = uow_factory

    async def can_access(self, conversation_id: UUID, user_id: UUID) -> bool:
        async with self._uow_factory() as uow:
            allowed = await can_access(conversation_id, user_id, uow)
        if not allowed:
            logger.debug("Access denied: user=%s conversation=%s", user_id, conversation_id)
        return allowed
