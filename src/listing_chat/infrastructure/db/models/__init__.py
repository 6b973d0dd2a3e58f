"""Import all models so Alembic can discover them via Base.metadata."""
from listing_chat.infrastructure.db.models.conversation import ConversationModel
from listing_chat.infrastructure.db.models.listing import ListingImageModel, ListingModel
from listing_chat.infrastructure.db.models.message import MessageModel
from listing_chat.infrastructure.db.models.user import UserModel

__all__ = [
    "ConversationModel",
    "ListingImageModel",
    "ListingModel",
    "MessageModel",
    "UserModel",
]
