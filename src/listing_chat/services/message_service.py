from __future__ import annotations

import math
import uuid
from datetime import datetime

from listing_chat.application.dto.message import MessagePage, MessageView, SentMessage
from listing_chat.application.exceptions import ValidationError
from listing_chat.application.policies.permissions import assert_conversation_access
from listing_chat.application.ports.clock import Clock, system_clock
from listing_chat.application.uow import UnitOfWork
from listing_chat.domain.entities.message import MAX_CONTENT_LENGTH, Message


def normalize_content(content: str | None) -> str:
    """Trim message text and enforce the 1..MAX_CONTENT_LENGTH bound."""
    text = (content or "").strip()
    if not text:
        raise ValidationError("Message content is required")
    if len(text) > MAX_CONTENT_LENGTH:
        raise ValidationError(
            f"Message must be between 1 and {MAX_CONTENT_LENGTH} characters"
        )
    return text


async def send_message(
    conversation_id: uuid.UUID,
    user_id: uuid.UUID,
    content: str,
    uow: UnitOfWork,
    *,
    clock: Clock = system_clock,
) -> SentMessage:
    """Append a message and bump last_message_at in one transaction."""
    text = normalize_content(content)
    conversation = await uow.conversations.get_by_id(conversation_id)
    conversation = assert_conversation_access(user_id, conversation)

    now = clock.now()
    msg = Message(
        id=uuid.uuid4(),
        conversation_id=conversation_id,
        sender_id=user_id,
        content=text,
        is_read=False,
        created_at=now,
    )
    msg = await uow.messages_w.create(msg)
    await uow.conversations_w.touch_last_message_at(conversation_id, msg.created_at)
    await uow.commit()

    conversation = await uow.conversations.get_by_id(conversation_id) or conversation
    listing = await uow.listings.get_summary(conversation.listing_id)
    sender = await uow.users.get_summary(user_id)
    return SentMessage(
        view=MessageView(message=msg, sender=sender),
        conversation=conversation,
        listing=listing,
    )


async def list_messages(
    conversation_id: uuid.UUID,
    user_id: uuid.UUID,
    page: int,
    limit: int,
    before: datetime | None,
    uow: UnitOfWork,
) -> MessagePage:
    """Return one page of history in chronological order.

    Pages count backwards from the newest message (page 1 is the most
    recent ``limit`` messages); ``before`` restricts the window to messages
    strictly older than that instant.
    """
    conversation = await uow.conversations.get_by_id(conversation_id)
    assert_conversation_access(user_id, conversation)

    offset = (page - 1) * limit
    newest_first = await uow.messages.list_messages(
        conversation_id, offset=offset, limit=limit, before=before,
    )
    total = await uow.messages.count_messages(conversation_id, before=before)

    messages = list(reversed(newest_first))
    senders = await uow.users.get_summaries({m.sender_id for m in messages})
    return MessagePage(
        items=[MessageView(message=m, sender=senders.get(m.sender_id)) for m in messages],
        total=total,
        page=page,
        total_pages=math.ceil(total / limit) if limit else 0,
        has_more=offset + len(messages) < total,
    )
