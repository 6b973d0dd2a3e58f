from __future__ import annotations

import uuid

from listing_chat.application.dto.message import ReadReceipt
from listing_chat.application.policies.permissions import assert_conversation_access
from listing_chat.application.uow import UnitOfWork


async def mark_read(
    conversation_id: uuid.UUID,
    user_id: uuid.UUID,
    uow: UnitOfWork,
) -> ReadReceipt:
    """Mark everything the other participant sent as read. A zero count is fine."""
    conversation = await uow.conversations.get_by_id(conversation_id)
    conversation = assert_conversation_access(user_id, conversation)
    count = await uow.messages_w.mark_read(conversation_id, user_id)
    await uow.commit()
    return ReadReceipt(conversation=conversation, reader_id=user_id, count=count)


async def unread_count(user_id: uuid.UUID, uow: UnitOfWork) -> int:
    return await uow.messages.count_unread_for_user(user_id)
