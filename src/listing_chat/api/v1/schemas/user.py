from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from listing_chat.api.v1.schemas.common import CamelModel


class UserSummaryResponse(CamelModel):
    id: UUID
    first_name: str | None
    last_name: str | None
    avatar_url: str | None


class ListingSummaryResponse(CamelModel):
    id: UUID
    title: str
    price: Decimal | None
    make: str | None
    model: str | None
    year: int | None
    status: str
    image_url: str | None = None
