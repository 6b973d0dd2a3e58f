from __future__ import annotations

from listing_chat.domain.entities.listing import ListingSummary
from listing_chat.domain.entities.user import UserSummary
from listing_chat.infrastructure.db.models.listing import ListingModel
from listing_chat.infrastructure.db.models.user import UserModel


def user_to_summary(model: UserModel) -> UserSummary:
    return UserSummary(
        id=model.id,
        first_name=model.first_name,
        last_name=model.last_name,
        avatar_url=model.avatar_url,
    )


def listing_to_summary(model: ListingModel, image_url: str | None) -> ListingSummary:
    return ListingSummary(
        id=model.id,
        owner_id=model.user_id,
        status=model.status,
        title=model.title,
        price=model.price,
        make=model.make,
        model=model.model,
        year=model.year,
        image_url=image_url,
    )
