from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from listing_chat.domain.entities.conversation import Conversation
from listing_chat.domain.entities.listing import ListingSummary
from listing_chat.domain.entities.message import Message
from listing_chat.domain.entities.user import UserSummary


@dataclass(frozen=True, slots=True)
class MessageView:
    message: Message
    sender: UserSummary | None


@dataclass(frozen=True, slots=True)
class MessagePage:
    items: list[MessageView]
    total: int
    page: int
    total_pages: int
    has_more: bool


@dataclass(frozen=True, slots=True)
class SentMessage:
    """Result of a send: the stored message plus what broadcasters need."""

    view: MessageView
    conversation: Conversation
    listing: ListingSummary | None

    @property
    def recipient_id(self) -> UUID:
        return self.conversation.other_participant(self.view.message.sender_id)


@dataclass(frozen=True, slots=True)
class ReadReceipt:
    conversation: Conversation
    reader_id: UUID
    count: int

    @property
    def other_id(self) -> UUID:
        return self.conversation.other_participant(self.reader_id)
