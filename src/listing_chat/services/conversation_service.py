from __future__ import annotations

import logging
import math
import uuid

from listing_chat.application.dto.conversation import (
    ConversationDetail,
    ConversationPage,
    StartedConversation,
)
from listing_chat.application.exceptions import ConflictError, NotFoundError
from listing_chat.application.policies.permissions import assert_conversation_access
from listing_chat.application.ports.clock import Clock, system_clock
from listing_chat.application.uow import UnitOfWork
from listing_chat.domain.entities.conversation import Conversation
from listing_chat.domain.entities.listing import ListingSummary
from listing_chat.domain.entities.message import Message
from listing_chat.domain.entities.user import UserSummary
from listing_chat.domain.value_objects.enums import ListingStatus
from listing_chat.services.message_service import normalize_content

logger = logging.getLogger(__name__)


async def start_conversation(
    user_id: uuid.UUID,
    listing_id: uuid.UUID,
    content: str,
    uow: UnitOfWork,
    *,
    clock: Clock = system_clock,
) -> StartedConversation:
    """Open a conversation with the listing owner, or append to the existing one.

    The caller is always the buyer. A (listing, buyer) pair maps to exactly
    one conversation, so contacting the same seller about the same listing
    again adds a message instead of opening a second thread.
    """
    text = normalize_content(content)

    listing = await uow.listings.get_summary(listing_id)
    if listing is None:
        raise NotFoundError("Listing not found")
    if listing.status != ListingStatus.ACTIVE:
        raise ConflictError("Cannot start conversation for inactive listing")
    if listing.owner_id == user_id:
        raise ConflictError("Cannot start conversation with yourself")

    now = clock.now()
    conversation, created = await uow.conversations_w.create_if_not_exists(
        Conversation(
            id=uuid.uuid4(),
            listing_id=listing_id,
            buyer_id=user_id,
            seller_id=listing.owner_id,
            last_message_at=now,
            created_at=now,
            updated_at=now,
        )
    )

    msg = await uow.messages_w.create(
        Message(
            id=uuid.uuid4(),
            conversation_id=conversation.id,
            sender_id=user_id,
            content=text,
            is_read=False,
            created_at=now,
        )
    )
    if not created:
        await uow.conversations_w.touch_last_message_at(conversation.id, msg.created_at)
    await uow.commit()

    if created:
        logger.info(
            "Conversation %s started on listing %s by buyer %s",
            conversation.id, listing_id, user_id,
        )

    conversation = await uow.conversations.get_by_id(conversation.id) or conversation
    detail = await _build_detail(
        conversation, user_id, uow, listing=listing, with_last_message=True,
    )
    return StartedConversation(detail=detail, message=msg, created=created)


async def list_user_conversations(
    user_id: uuid.UUID,
    page: int,
    limit: int,
    uow: UnitOfWork,
) -> ConversationPage:
    offset = (page - 1) * limit
    conversations = await uow.conversations.list_for_user(
        user_id, offset=offset, limit=limit,
    )
    total = await uow.conversations.count_for_user(user_id)

    people = await uow.users.get_summaries(
        {c.buyer_id for c in conversations} | {c.seller_id for c in conversations}
    )
    items = [
        await _build_detail(c, user_id, uow, people=people, with_last_message=True)
        for c in conversations
    ]
    return ConversationPage(
        items=items,
        total=total,
        page=page,
        total_pages=math.ceil(total / limit) if limit else 0,
    )


async def get_conversation(
    conversation_id: uuid.UUID,
    user_id: uuid.UUID,
    uow: UnitOfWork,
) -> ConversationDetail:
    conversation = await uow.conversations.get_by_id(conversation_id)
    conversation = assert_conversation_access(user_id, conversation)
    return await _build_detail(conversation, user_id, uow)


async def delete_conversation(
    conversation_id: uuid.UUID,
    user_id: uuid.UUID,
    uow: UnitOfWork,
) -> Conversation:
    """Hard-delete a conversation and all of its messages for both participants."""
    conversation = await uow.conversations.get_by_id(conversation_id)
    conversation = assert_conversation_access(user_id, conversation)

    removed = await uow.messages_w.delete_for_conversation(conversation_id)
    await uow.conversations_w.delete(conversation_id)
    await uow.commit()

    logger.info(
        "Conversation %s deleted by %s (%d messages removed)",
        conversation_id, user_id, removed,
    )
    return conversation


async def list_conversation_ids(user_id: uuid.UUID, uow: UnitOfWork) -> list[uuid.UUID]:
    return await uow.conversations.list_ids_for_user(user_id)


async def _build_detail(
    conversation: Conversation,
    user_id: uuid.UUID,
    uow: UnitOfWork,
    *,
    listing: ListingSummary | None = None,
    people: dict[uuid.UUID, UserSummary] | None = None,
    with_last_message: bool = False,
) -> ConversationDetail:
    if listing is None:
        listing = await uow.listings.get_summary(conversation.listing_id)
    if people is None:
        people = await uow.users.get_summaries(
            {conversation.buyer_id, conversation.seller_id}
        )
    last_message = await uow.messages.latest(conversation.id) if with_last_message else None
    return ConversationDetail(
        conversation=conversation,
        listing=listing,
        buyer=people.get(conversation.buyer_id),
        seller=people.get(conversation.seller_id),
        unread_count=await uow.messages.count_unread(conversation.id, user_id),
        last_message=last_message,
    )
