from __future__ import annotations

from dataclasses import dataclass

from listing_chat.domain.entities.conversation import Conversation
from listing_chat.domain.entities.listing import ListingSummary
from listing_chat.domain.entities.message import Message
from listing_chat.domain.entities.user import UserSummary


@dataclass(frozen=True, slots=True)
class ConversationDetail:
    """A conversation joined with its listing and participant summaries."""

    conversation: Conversation
    listing: ListingSummary | None
    buyer: UserSummary | None
    seller: UserSummary | None
    unread_count: int = 0
    last_message: Message | None = None


@dataclass(frozen=True, slots=True)
class ConversationPage:
    items: list[ConversationDetail]
    total: int
    page: int
    total_pages: int


@dataclass(frozen=True, slots=True)
class StartedConversation:
    detail: ConversationDetail
    message: Message
    created: bool
