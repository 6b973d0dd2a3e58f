from __future__ import annotations

from datetime import datetime
from uuid import UUID

from listing_chat.api.v1.schemas.common import CamelModel, PaginatedResponse
from listing_chat.api.v1.schemas.message import MessageContent, MessageResponse
from listing_chat.api.v1.schemas.user import ListingSummaryResponse, UserSummaryResponse
from listing_chat.application.dto.conversation import ConversationDetail, ConversationPage


class StartConversationRequest(CamelModel):
    listing_id: UUID
    message: MessageContent


class ConversationResponse(CamelModel):
    id: UUID
    listing_id: UUID
    buyer_id: UUID
    seller_id: UUID
    last_message_at: datetime | None
    created_at: datetime
    updated_at: datetime
    listing: ListingSummaryResponse | None = None
    buyer: UserSummaryResponse | None = None
    seller: UserSummaryResponse | None = None
    unread_count: int = 0
    last_message: MessageResponse | None = None

    @classmethod
    def from_detail(cls, detail: ConversationDetail) -> ConversationResponse:
        conv = detail.conversation
        return cls(
            id=conv.id,
            listing_id=conv.listing_id,
            buyer_id=conv.buyer_id,
            seller_id=conv.seller_id,
            last_message_at=conv.last_message_at,
            created_at=conv.created_at,
            updated_at=conv.updated_at,
            listing=ListingSummaryResponse.model_validate(detail.listing) if detail.listing else None,
            buyer=UserSummaryResponse.model_validate(detail.buyer) if detail.buyer else None,
            seller=UserSummaryResponse.model_validate(detail.seller) if detail.seller else None,
            unread_count=detail.unread_count,
            last_message=(
                MessageResponse.from_message(detail.last_message) if detail.last_message else None
            ),
        )


class ConversationPageResponse(PaginatedResponse[ConversationResponse]):
    @classmethod
    def from_page(cls, page: ConversationPage) -> ConversationPageResponse:
        return cls(
            items=[ConversationResponse.from_detail(d) for d in page.items],
            total=page.total,
            page=page.page,
            total_pages=page.total_pages,
        )


class StartConversationResponse(CamelModel):
    conversation: ConversationResponse
    message: MessageResponse
    created: bool
