from __future__ import annotations

from datetime import datetime
from typing import Annotated
from uuid import UUID

from pydantic import StringConstraints

from listing_chat.api.v1.schemas.common import CamelModel, PaginatedResponse
from listing_chat.api.v1.schemas.user import UserSummaryResponse
from listing_chat.application.dto.message import MessagePage, MessageView
from listing_chat.domain.entities.message import MAX_CONTENT_LENGTH, Message
from listing_chat.domain.entities.user import UserSummary

MessageContent = Annotated[
    str,
    StringConstraints(strip_whitespace=True, min_length=1, max_length=MAX_CONTENT_LENGTH),
]


class SendMessageRequest(CamelModel):
    content: MessageContent


class TypingRequest(CamelModel):
    is_typing: bool


class MessageResponse(CamelModel):
    id: UUID
    conversation_id: UUID
    sender_id: UUID
    content: str
    is_read: bool
    created_at: datetime
    sender: UserSummaryResponse | None = None

    @classmethod
    def from_message(cls, msg: Message, sender: UserSummary | None = None) -> MessageResponse:
        return cls(
            id=msg.id,
            conversation_id=msg.conversation_id,
            sender_id=msg.sender_id,
            content=msg.content,
            is_read=msg.is_read,
            created_at=msg.created_at,
            sender=UserSummaryResponse.model_validate(sender) if sender else None,
        )

    @classmethod
    def from_view(cls, view: MessageView) -> MessageResponse:
        return cls.from_message(view.message, view.sender)


class MessagePageResponse(PaginatedResponse[MessageResponse]):
    has_more: bool

    @classmethod
    def from_page(cls, page: MessagePage) -> MessagePageResponse:
        return cls(
            items=[MessageResponse.from_view(v) for v in page.items],
            total=page.total,
            page=page.page,
            total_pages=page.total_pages,
            has_more=page.has_more,
        )
